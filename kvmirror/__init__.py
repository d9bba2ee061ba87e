"""
kvmirror — Versioned secret lifecycle with a value-free CI mirror.

Every secret written through this package lives twice in a KV v2 backend:
the real secret under ``<prefix>/<path>`` and a mirror under
``ci/<prefix>/<path>`` carrying the same keys and version numbers but
only empty values.
"""

__version__ = "0.4.0"
