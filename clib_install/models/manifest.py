"""
Pydantic model for clib.json / package.json manifests, and helpers to load them
from a project directory.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from clib_install.exceptions import ManifestParseError

from .package import PackageDescriptor, PackageIdentifier

log = logging.getLogger(__name__)

MANIFEST_NAMES: Tuple[str, ...] = ("clib.json", "package.json")


class Manifest(BaseModel):
    """A project's or package's dependency declarations."""

    model_config = ConfigDict(extra="allow", frozen=True)

    name: Optional[str] = None
    version: Optional[str] = None
    repo: Optional[str] = None
    description: Optional[str] = None
    src: List[str] = Field(default_factory=list)
    dependencies: Dict[str, str] = Field(default_factory=dict)
    development: Dict[str, str] = Field(default_factory=dict)
    registries: List[str] = Field(default_factory=list)
    prefix: Optional[str] = None

    @field_validator("dependencies", "development", mode="before")
    @classmethod
    def coerce_ranges(cls, v: Any) -> Any:
        """Tolerates `null` sections and non-string version ranges."""
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(k): "" if r is None else str(r) for k, r in v.items()}
        return v

    @field_validator("src", "registries", mode="before")
    @classmethod
    def coerce_lists(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_descriptor(
        self, identifier: PackageIdentifier, version: str, href: str
    ) -> PackageDescriptor:
        return PackageDescriptor(
            identifier=identifier,
            version=version,
            href=href,
            src=tuple(self.src),
            dependencies=self.dependencies,
            development=self.development,
            prefix=self.prefix,
            manifest=self.model_dump(exclude_none=True),
        )


def parse_manifest(data: Any, source: object = "manifest") -> Manifest:
    """Validates decoded JSON as a manifest."""
    if not isinstance(data, dict):
        raise ManifestParseError(source, f"Manifest '{source}' is not a JSON object.")
    try:
        return Manifest.model_validate(data)
    except ValidationError as e:
        raise ManifestParseError(source, f"Invalid manifest '{source}': {e}") from e


def load_manifest_file(path: Path) -> Manifest:
    """Reads and validates a single manifest file."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ManifestParseError(path, f"Could not parse '{path}': {e}") from e
    except OSError as e:
        raise ManifestParseError(path, f"Could not read '{path}': {e}") from e
    return parse_manifest(data, path)


def find_manifest(directory: Path) -> Optional[Path]:
    """Returns the first manifest candidate present in `directory`."""
    for name in MANIFEST_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_local_manifest(directory: Path) -> Optional[Manifest]:
    """
    Loads the root project's manifest, or None when the directory has none.
    """
    path = find_manifest(directory)
    if path is None:
        log.debug(f"No manifest found in '{directory}'.")
        return None
    log.debug(f"Loading root manifest from '{path}'.")
    return load_manifest_file(path)
