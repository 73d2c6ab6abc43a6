"""
Registry search: holds the configured registries in order and resolves package
identifiers against package indexes fetched once per process.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from clib_install.exceptions import ClibInstallError
from clib_install.models.package import PackageIdentifier
from clib_install.storage.secrets import Secrets
from clib_install.utils.urls import url_host

log = logging.getLogger(__name__)

DEFAULT_REGISTRIES = ("https://github.com/clibs/clib/wiki/Packages",)

# `## Category` headings and `- [owner/name](href) - description` items
_HEADING = re.compile(r"^\s*#{1,6}\s*(?P<title>.+?)\s*$")
_ITEM = re.compile(
    r"^\s*[-*+]\s*\[(?P<id>[^\]]+)\]\((?P<href>[^)\s]+)\)\s*(?:[-:–]\s*)?(?P<desc>.*)$"
)


@dataclass(frozen=True)
class RegistryEntry:
    name: str
    endpoint: str
    auth_token: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class DownloadReference:
    """Where a resolved package can be downloaded from."""

    identifier: PackageIdentifier
    href: str
    registry: str
    description: str = ""
    category: str = ""


def _identifier_from_id(package_id: str) -> Optional[PackageIdentifier]:
    package_id = package_id.strip()
    if "/" not in package_id:
        return None
    try:
        return PackageIdentifier.parse(package_id)
    except ValueError:
        return None


def parse_markdown_index(text: str, registry: str) -> List[DownloadReference]:
    """Parses the wiki list format used by the clib package registry."""
    references = []
    category = ""
    for line in text.splitlines():
        if heading := _HEADING.match(line):
            category = heading["title"]
            continue
        item = _ITEM.match(line)
        if not item:
            continue
        identifier = _identifier_from_id(item["id"])
        if identifier is None:
            continue
        references.append(
            DownloadReference(
                identifier=identifier,
                href=item["href"],
                registry=registry,
                description=item["desc"].strip(),
                category=category,
            )
        )
    return references


def parse_json_index(data: Any, registry: str) -> List[DownloadReference]:
    """
    Parses a JSON index: either a list of package objects or an object mapping
    package ids to download URLs.
    """
    if isinstance(data, dict):
        data = [{"id": k, "href": v} for k, v in data.items()]
    if not isinstance(data, list):
        raise ValueError("JSON registry index must be a list or an object.")

    references = []
    for item in data:
        if not isinstance(item, dict):
            continue
        identifier = _identifier_from_id(str(item.get("id") or item.get("name") or ""))
        href = item.get("href") or item.get("url")
        if identifier is None or not href:
            continue
        references.append(
            DownloadReference(
                identifier=identifier,
                href=str(href),
                registry=registry,
                description=str(item.get("description") or ""),
                category=str(item.get("category") or ""),
            )
        )
    return references


def parse_index(text: str, registry: str) -> List[DownloadReference]:
    """Parses a registry index in JSON or wiki markdown form."""
    stripped = text.lstrip()
    if stripped.startswith(("[", "{")):
        try:
            return parse_json_index(json.loads(stripped), registry)
        except (json.JSONDecodeError, ValueError) as e:
            log.debug(f"Registry '{registry}' is not a JSON index ({e}); trying markdown.")
    return parse_markdown_index(text, registry)


class RegistryResolver:
    """
    Ordered registry search. The first registry that knows a package wins; no
    merging across registries.
    """

    def __init__(self, entries: Iterable[RegistryEntry]):
        self.entries: List[RegistryEntry] = list(entries)
        self._indexes: Dict[str, Dict[PackageIdentifier, DownloadReference]] = {
            entry.endpoint: {} for entry in self.entries
        }
        self.fetched = False

    @classmethod
    def from_urls(
        cls,
        urls: Iterable[str],
        secrets: Optional[Secrets] = None,
        include_defaults: bool = True,
    ) -> "RegistryResolver":
        """
        Builds the search order from manifest-declared registries followed by
        the default registry. Duplicate endpoints keep their first position.
        """
        secrets = secrets or Secrets()
        ordered = list(urls) + (list(DEFAULT_REGISTRIES) if include_defaults else [])
        entries = []
        for url in dict.fromkeys(u.strip() for u in ordered if u and u.strip()):
            entries.append(
                RegistryEntry(
                    name=url_host(url) or url,
                    endpoint=url,
                    auth_token=secrets.for_url(url),
                )
            )
        return cls(entries)

    def load_index(self, entry: RegistryEntry, text: str) -> int:
        """Replaces a registry's package index from its raw text."""
        references = parse_index(text, entry.name)
        index = {}
        for ref in references:
            index.setdefault(ref.identifier, ref)
        self._indexes[entry.endpoint] = index
        return len(index)

    def add_references(
        self, entry: RegistryEntry, references: Iterable[DownloadReference]
    ) -> None:
        index = self._indexes.setdefault(entry.endpoint, {})
        for ref in references:
            index.setdefault(ref.identifier, ref)

    async def fetch_registries(self, client) -> None:
        """
        Fetches every registry index once. A registry that cannot be fetched is
        logged and stays empty; the others still serve lookups.
        """

        async def fetch_one(entry: RegistryEntry) -> None:
            try:
                text = await client.fetch_registry_index(entry.endpoint, entry.auth_token)
            except ClibInstallError as e:
                log.warning(
                    f"[yellow]Could not fetch registry {entry.endpoint}: {e}[/yellow]"
                )
                return
            count = self.load_index(entry, text)
            log.debug(f"Registry {entry.endpoint} lists {count} packages.")

        await asyncio.gather(*(fetch_one(entry) for entry in self.entries))
        self.fetched = True

    def find(self, identifier: PackageIdentifier) -> Optional[DownloadReference]:
        """Returns the first registry's reference for `identifier`, or None."""
        for entry in self.entries:
            ref = self._indexes.get(entry.endpoint, {}).get(identifier)
            if ref is not None:
                log.debug(f"Found {identifier} in registry {entry.name}.")
                return ref
        return None
