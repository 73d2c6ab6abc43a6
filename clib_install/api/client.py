"""
Async HTTP client for registry indexes and package files.
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional

import aiohttp

from clib_install import __version__
from clib_install.exceptions import FetchFailedError
from clib_install.models.manifest import MANIFEST_NAMES
from clib_install.storage.secrets import Secrets
from clib_install.utils.urls import raw_file_url, registry_index_url

log = logging.getLogger(__name__)


class RegistryClient:
    """
    Shared aiohttp transport used by every worker of an install run.

    Features:
    - One pooled session, created lazily and sized from the worker count
    - Bearer authentication per host from the secrets store
    - Transport errors surfaced as FetchFailedError
    """

    def __init__(
        self,
        secrets: Optional[Secrets] = None,
        token: Optional[str] = None,
        max_workers: int = 12,
    ):
        """
        Args:
            secrets: Host -> token store used to authenticate requests.
            token: Fallback token for hosts without a stored secret.
            max_workers: The number of concurrent workers, used to tune the
            connection pool.
        """
        self.secrets = secrets or Secrets()
        self.token = token
        self.max_workers = max_workers
        self._session: Optional[aiohttp.ClientSession] = None

    async def _initialize_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.max_workers * 2,
                limit_per_host=self.max_workers,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={
                    "User-Agent": f"clib-install/{__version__}",
                    "Accept-Encoding": "gzip, deflate",
                },
                timeout=aiohttp.ClientTimeout(total=60, connect=15, sock_read=30),
            )
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "RegistryClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _auth_headers(self, url: str, token: Optional[str] = None) -> Dict[str, str]:
        token = token or self.secrets.for_url(url) or self.token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _get(
        self, url: str, identifier: object, token: Optional[str] = None
    ) -> Optional[bytes]:
        """
        GETs a URL. Returns None on 404 so callers can try another candidate.
        """
        session = await self._initialize_session()
        start_time = time.monotonic()
        try:
            async with session.get(url, headers=self._auth_headers(url, token)) as r:
                duration_ms = (time.monotonic() - start_time) * 1000
                log.debug(f"GET {url} -> {r.status} ({duration_ms:.0f} ms)")
                if r.status == 404:
                    return None
                r.raise_for_status()
                return await r.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchFailedError(identifier, f"Failed to fetch {url}: {e}") from e

    async def fetch_registry_index(
        self, endpoint: str, token: Optional[str] = None
    ) -> str:
        url = registry_index_url(endpoint)
        body = await self._get(url, endpoint, token)
        if body is None:
            raise FetchFailedError(endpoint, f"Registry index not found at {url}")
        return body.decode("utf-8", errors="replace")

    async def fetch_package_manifest(
        self, identifier: object, href: str, version: str
    ) -> Dict[str, Any]:
        """
        Fetches a package's manifest, trying each manifest filename in order.
        """
        for name in MANIFEST_NAMES:
            url = raw_file_url(href, version, name)
            body = await self._get(url, identifier, self.secrets.for_url(href))
            if body is None:
                continue
            try:
                return json.loads(body)
            except json.JSONDecodeError as e:
                raise FetchFailedError(
                    identifier, f"Manifest at {url} is not valid JSON: {e}"
                ) from e
        raise FetchFailedError(
            identifier, f"No manifest found for '{identifier}' at {version}."
        )

    async def fetch_package_file(
        self, identifier: object, href: str, version: str, path: str
    ) -> bytes:
        url = raw_file_url(href, version, path)
        body = await self._get(url, identifier, self.secrets.for_url(href))
        if body is None:
            raise FetchFailedError(identifier, f"File '{path}' not found at {url}")
        return body
