"""
Registry Layer.

This package resolves package identifiers to download references across the
configured registries.
"""

from .resolver import DownloadReference, RegistryEntry, RegistryResolver

__all__ = ["DownloadReference", "RegistryEntry", "RegistryResolver"]
