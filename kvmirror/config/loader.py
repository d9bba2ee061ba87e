"""
Config Loader — Find, parse and resolve secret.yml.

Lookup order for the config file:
1. Explicit path (``--config``)
2. KVMIRROR_CONFIG environment variable
3. ./secret.yml
4. ~/.kvmirror/secret.yml
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from .models import COMMON, KVMirrorConfig, SecretScope

logger = logging.getLogger(__name__)

ENV_CONFIG = "KVMIRROR_CONFIG"
CONFIG_NAME = "secret.yml"


def find_config_file(explicit: Optional[str] = None) -> Path:
    """Return the first config file that exists, in lookup order."""
    if explicit:
        path = Path(explicit).expanduser()
        if not path.is_file():
            raise ConfigurationError(f"config file not found: {path}")
        return path

    from_env = os.environ.get(ENV_CONFIG)
    if from_env:
        path = Path(from_env).expanduser()
        if not path.is_file():
            raise ConfigurationError(f"{ENV_CONFIG} points to a missing file: {path}")
        return path

    for candidate in (Path.cwd() / CONFIG_NAME, Path.home() / ".kvmirror" / CONFIG_NAME):
        if candidate.is_file():
            return candidate

    raise ConfigurationError(
        f"{CONFIG_NAME} not found (use --config or set {ENV_CONFIG})"
    )


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return its contents."""
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_config(path: Optional[str] = None) -> KVMirrorConfig:
    """Load and validate secret.yml."""
    config_path = find_config_file(path)
    logger.debug(f"Using config file: {config_path}")
    try:
        return KVMirrorConfig(**load_yaml(config_path))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in {config_path}: {e}") from e
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration in {config_path}: {e}") from e


def resolve_scope(
    config: KVMirrorConfig,
    platform: Optional[str] = None,
    environment: Optional[str] = None,
) -> SecretScope:
    """
    Resolve a platform/environment pair to a SecretScope.

    Rules:
    - no platform means "common"
    - an environment needs a platform
    - "common" has no environments
    - no environment means the "common" prefix of the platform
    """
    platform = platform or ""
    environment = environment or ""

    if not platform and environment:
        raise ConfigurationError("environment can't be set without platform")
    if platform == COMMON and environment:
        raise ConfigurationError("environment can't be set when platform is common")

    platform = platform or COMMON
    platform_config = config.platforms.get(platform)
    if platform_config is None:
        raise ConfigurationError(f"platform {platform} does not exist in configuration file")

    if not platform_config.clusters:
        raise ConfigurationError(f"no cluster configured for platform {platform}")

    endpoints = []
    for cluster in platform_config.clusters:
        cluster_config = config.clusters.get(cluster)
        if cluster_config is None or not cluster_config.endpoint:
            raise ConfigurationError(f"can't read endpoint for cluster {cluster} from config")
        endpoints.append(cluster_config.endpoint)

    if not environment or environment == COMMON:
        secret_prefix = COMMON
    else:
        if environment not in platform_config.environments:
            raise ConfigurationError(
                f"environment {environment} does not exist in configuration file"
            )
        secret_prefix = platform_config.environments[environment]

    namespace = platform_config.namespace
    if namespace is None and config.parent_namespace:
        namespace = f"{config.parent_namespace}/{platform}"

    return SecretScope(
        platform=platform,
        environment=environment,
        secret_prefix=secret_prefix,
        endpoints=tuple(endpoints),
        namespace=namespace,
        mount=config.mount,
        mirror_prefix=config.mirror_prefix,
        destroy_delay_days=config.destroy_delay_days,
    )
