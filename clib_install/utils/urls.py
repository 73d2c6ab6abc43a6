"""
Utilities for building registry and raw-file URLs.
"""

import re
from typing import Optional
from urllib.parse import urlparse

_GITHUB_WIKI = re.compile(
    r"^https?://github\.com/(?P<owner>[^/]+)/(?P<repo>[^/]+)/wiki/(?P<page>[^/?#]+)"
)


def url_host(url: str) -> str:
    """Lower-cased host of a URL, or '' for malformed input."""
    return (urlparse(url).hostname or "").lower()


def registry_index_url(endpoint: str) -> str:
    """
    Returns the URL to fetch a registry's package index from. GitHub wiki pages
    are read through their raw markdown source.
    """
    match = _GITHUB_WIKI.match(endpoint)
    if match:
        return (
            "https://raw.githubusercontent.com/wiki/"
            f"{match['owner']}/{match['repo']}/{match['page']}.md"
        )
    return endpoint


def _repo_path(href: str) -> Optional[str]:
    path = urlparse(href).path.strip("/")
    if path.endswith(".git"):
        path = path[:-4]
    return path or None


def raw_file_url(href: str, version: str, file_path: str) -> str:
    """Builds the URL for one file of a repository at a given version."""
    file_path = file_path.lstrip("/")
    host = url_host(href)
    repo = _repo_path(href)

    if host == "github.com" and repo:
        return f"https://raw.githubusercontent.com/{repo}/{version}/{file_path}"
    if "gitlab" in host and repo:
        return f"{href.rstrip('/')}/-/raw/{version}/{file_path}"
    return f"{href.rstrip('/')}/{version}/{file_path}"
