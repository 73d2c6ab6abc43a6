"""
A file-based cache with a fixed time-to-live for package manifests and package
content. Staleness is checked lazily at read time; nothing is evicted.
"""

import asyncio
import hashlib
import json
import logging
import shutil
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

log = logging.getLogger(__name__)

ENTRY_MARKER = ".cache-entry.json"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    stored_path: Path
    fetched_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_fresh(self, now: float) -> bool:
        return self.age(now) < self.ttl


@dataclass(frozen=True)
class CacheHit:
    """A fresh cache entry. `content` is decoded JSON or a package directory."""

    entry: CacheEntry
    content: Any
    freshness: float


class PackageCache:
    """
    Caches package manifests (JSON) and package content (directories) keyed by
    `owner/name@version`.
    """

    def __init__(
        self,
        cache_dir_path: Path,
        max_age_days: int = 30,
        skip_cache: bool = False,
        clock: Callable[[], float] = time.time,
        stats_callback: Callable[[bool], None] | None = None,
    ):
        """
        Args:
            cache_dir_path: Root directory of the cache.
            max_age_days: Age after which an entry is stale.
            skip_cache: Makes every read a miss regardless of freshness.
            clock: Source of the current time, in seconds.
            stats_callback: Optional callback reporting hits (True) and misses
            (False).
        """
        self.json_dir = cache_dir_path / "json"
        self.packages_dir = cache_dir_path / "packages"
        self.ttl = max_age_days * 86400
        self.skip_cache = skip_cache
        self._clock = clock
        self._stats_callback = stats_callback
        self._locks: dict[str, asyncio.Lock] = {}

    def _record(self, is_hit: bool) -> None:
        if self._stats_callback:
            self._stats_callback(is_hit)

    @staticmethod
    def _hash_key(key: str) -> str:
        return hashlib.md5(key.encode("utf-8")).hexdigest()  # noqa: S324

    def _json_path(self, key: str) -> Path:
        return self.json_dir / f"{self._hash_key(key)}.json"

    def _package_path(self, key: str) -> Path:
        return self.packages_dir / self._hash_key(key)

    def lock(self, key: str) -> asyncio.Lock:
        """The write lock for a cache key."""
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def _load_entry(self, key: str, payload_path: Path) -> Optional[dict]:
        try:
            with open(payload_path, encoding="utf-8") as f:
                payload = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            log.debug(f"Cache read failed for key '{key}': {e}")
            return None
        if not isinstance(payload, dict) or payload.get("key") != key:
            return None
        return payload

    def _hit_or_miss(
        self, key: str, payload: Optional[dict], stored_path: Path, content: Any
    ) -> Optional[CacheHit]:
        if payload is None:
            self._record(False)
            return None

        entry = CacheEntry(
            key=key,
            stored_path=stored_path,
            fetched_at=float(payload.get("timestamp", 0)),
            ttl=self.ttl,
        )
        now = self._clock()
        if not entry.is_fresh(now):
            log.debug(f"Cache entry for '{key}' is stale.")
            self._record(False)
            return None

        self._record(True)
        return CacheHit(
            entry=entry, content=content, freshness=self.ttl - entry.age(now)
        )

    def get(self, key: str) -> Optional[CacheHit]:
        """Returns a fresh JSON entry for `key`, or None on a miss."""
        if self.skip_cache:
            self._record(False)
            return None

        cache_path = self._json_path(key)
        if not cache_path.is_file():
            self._record(False)
            return None

        payload = self._load_entry(key, cache_path)
        content = payload.get("value") if payload else None
        return self._hit_or_miss(key, payload, cache_path, content)

    def put(self, key: str, value: Any) -> bool:
        """Stores a JSON-serialisable value under `key`."""
        cache_path = self._json_path(key)
        try:
            payload = json.dumps(
                {"key": key, "timestamp": self._clock(), "value": value}
            )
            self.json_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = self.json_dir / f".{cache_path.name}.{uuid.uuid4().hex}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(payload)
            tmp_path.replace(cache_path)
            return True
        except (TypeError, OSError) as e:
            log.warning(f"Cache write failed for key '{key}': {e}")
            return False

    def get_package(self, key: str) -> Optional[CacheHit]:
        """Returns a fresh package directory for `key`, or None on a miss."""
        if self.skip_cache:
            self._record(False)
            return None

        package_dir = self._package_path(key)
        marker = package_dir / ENTRY_MARKER
        if not marker.is_file():
            self._record(False)
            return None

        payload = self._load_entry(key, marker)
        return self._hit_or_miss(key, payload, package_dir, package_dir)

    def _store_package(self, key: str, source_dir: Path) -> None:
        target = self._package_path(key)
        staging = self.packages_dir / f".{target.name}.{uuid.uuid4().hex}.tmp"
        self.packages_dir.mkdir(parents=True, exist_ok=True)
        shutil.copytree(source_dir, staging)
        with open(staging / ENTRY_MARKER, "w", encoding="utf-8") as f:
            json.dump({"key": key, "timestamp": self._clock()}, f)
        if target.exists():
            shutil.rmtree(target)
        staging.rename(target)

    async def put_package(self, key: str, source_dir: Path) -> bool:
        """Copies an installed package directory into the cache."""
        async with self.lock(key):
            try:
                await asyncio.to_thread(self._store_package, key, source_dir)
                return True
            except OSError as e:
                log.warning(f"Cache write failed for package '{key}': {e}")
                return False

    @staticmethod
    def _restore_package(package_dir: Path, destination: Path) -> None:
        destination.mkdir(parents=True, exist_ok=True)
        for item in package_dir.iterdir():
            if item.name == ENTRY_MARKER:
                continue
            if item.is_dir():
                shutil.copytree(item, destination / item.name, dirs_exist_ok=True)
            else:
                shutil.copy2(item, destination / item.name)

    async def copy_package(self, hit: CacheHit, destination: Path) -> None:
        """Copies a cached package into `destination`, overwriting files."""
        async with self.lock(hit.entry.key):
            await asyncio.to_thread(self._restore_package, hit.content, destination)

    def clear(self) -> bool:
        """Removes all cache entries."""
        log.info("Clearing all cache entries...")
        try:
            for directory in (self.json_dir, self.packages_dir):
                if directory.exists():
                    shutil.rmtree(directory)
            return True
        except OSError as e:
            log.error(f"Failed to clear cache: {e}")
            return False
