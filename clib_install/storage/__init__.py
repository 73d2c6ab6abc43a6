"""
Storage Layer.

This package handles all data persistence: the package cache, the settings
file, registry secrets and manifest write-back.
"""

from .cache import PackageCache
from .config_manager import ConfigManager
from .manifest_writer import ManifestWriter
from .secrets import Secrets

__all__ = ["ConfigManager", "ManifestWriter", "PackageCache", "Secrets"]
