"""
Transport Layer.

This package handles all HTTP communication with registries and package hosts.
"""

from .client import RegistryClient

__all__ = ["RegistryClient"]
