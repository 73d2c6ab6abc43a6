"""
Package identity and resolved package descriptors.
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

DEFAULT_OWNER = "clibs"
DEFAULT_VERSION = "master"

ROOT_TARGETS = (".", "./")


@dataclass(frozen=True, order=True)
class PackageIdentifier:
    """The (owner, name) pair that identifies a package for dedup."""

    owner: str
    name: str

    @classmethod
    def parse(cls, slug: str) -> "PackageIdentifier":
        return parse_slug(slug)[0]

    @property
    def id(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.id


def normalize_version(version: Optional[str]) -> str:
    """Maps an empty or wildcard version range onto the default branch."""
    if not version or version.strip() in ("*", "latest"):
        return DEFAULT_VERSION
    return version.strip()


def parse_slug(slug: str) -> Tuple[PackageIdentifier, str]:
    """
    Parses `[owner/]name[@version]` into an identifier and a version.

    Raises:
        ValueError: If the slug has no package name.
    """
    slug = slug.strip()
    version = None
    if "@" in slug:
        slug, version = slug.rsplit("@", 1)

    if "/" in slug:
        owner, name = slug.split("/", 1)
    else:
        owner, name = DEFAULT_OWNER, slug

    owner = owner.strip() or DEFAULT_OWNER
    name = name.strip().strip("/")
    if not name:
        raise ValueError(f"Invalid package slug: '{slug}'")
    return PackageIdentifier(owner, name), normalize_version(version)


def is_root_target(slug: str) -> bool:
    """`.` and `./` (exactly) denote the current project itself."""
    return slug in ROOT_TARGETS


def is_local_target(slug: str) -> bool:
    """
    True for slugs that name the current project: `.`, `./` or an existing
    file. Anything else, even a path-like slug, goes to the registries.
    """
    return is_root_target(slug) or Path(slug).is_file()


def _freeze(mapping: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class PackageDescriptor:
    """A resolved package: identity, version, where to get it and what it needs."""

    identifier: PackageIdentifier
    version: str
    href: str
    src: Tuple[str, ...] = ()
    dependencies: Mapping[str, str] = field(default_factory=dict)
    development: Mapping[str, str] = field(default_factory=dict)
    prefix: Optional[str] = None
    manifest: Mapping[str, object] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "dependencies", _freeze(self.dependencies))
        object.__setattr__(self, "development", _freeze(self.development))
        object.__setattr__(self, "manifest", MappingProxyType(dict(self.manifest)))
        object.__setattr__(self, "src", tuple(self.src))

    @property
    def key(self) -> str:
        """Canonical cache key for this package at this version."""
        return f"{self.identifier}@{self.version}"

    @property
    def resolved_version(self) -> str:
        """The version the package declares, falling back to the requested one."""
        declared = self.manifest.get("version")
        return str(declared) if declared else self.version

    @property
    def install_name(self) -> str:
        """Directory name the package is installed under."""
        declared = self.manifest.get("name")
        return str(declared) if declared else self.identifier.name

    def dependency_slugs(self, include_development: bool = False) -> dict[str, str]:
        deps = dict(self.dependencies)
        if include_development:
            deps.update(self.development)
        return deps
