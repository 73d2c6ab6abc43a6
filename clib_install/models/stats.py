"""
Dataclass for tracking install session statistics.
"""

import time
from dataclasses import dataclass, field


@dataclass
class InstallStats:
    """Tracks what an install session did."""

    packages_installed: int = 0
    packages_already_installed: int = 0
    packages_from_cache: int = 0
    packages_failed: int = 0
    files_written: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    manifest_saves: int = 0
    failed_targets: list[str] = field(default_factory=list)
    _start_time: float = field(default_factory=time.monotonic, repr=False)

    def record_cache(self, is_hit: bool) -> None:
        if is_hit:
            self.cache_hits += 1
        else:
            self.cache_misses += 1

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._start_time

    @property
    def succeeded(self) -> bool:
        return not self.failed_targets
