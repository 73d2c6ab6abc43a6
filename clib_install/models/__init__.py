"""
Data Models Layer.

This package contains the models that define the core data structures used
throughout the installer: configuration, manifests, packages and statistics.
"""

from .config import InstallConfig
from .manifest import Manifest
from .package import PackageDescriptor, PackageIdentifier
from .stats import InstallStats

__all__ = [
    "InstallConfig",
    "InstallStats",
    "Manifest",
    "PackageDescriptor",
    "PackageIdentifier",
]
