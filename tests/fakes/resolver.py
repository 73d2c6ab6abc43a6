"""Registry resolver that records every lookup."""

from clib_install.models.package import PackageIdentifier
from clib_install.registry.resolver import RegistryResolver


class RecordingResolver(RegistryResolver):
    """RegistryResolver that keeps a list of the identifiers passed to find()."""

    def __init__(self, entries):
        super().__init__(entries)
        self.find_calls: list[PackageIdentifier] = []

    def find(self, identifier):
        self.find_calls.append(identifier)
        return super().find(identifier)
