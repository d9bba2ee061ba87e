"""
Configuration — secret.yml loading and scope resolution.
"""

from .loader import find_config_file, load_config, resolve_scope
from .models import ClusterConfig, KVMirrorConfig, PlatformConfig, SecretScope

__all__ = [
    "ClusterConfig",
    "KVMirrorConfig",
    "PlatformConfig",
    "SecretScope",
    "find_config_file",
    "load_config",
    "resolve_scope",
]
