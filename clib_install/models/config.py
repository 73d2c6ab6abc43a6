"""
Pydantic model for install configuration.
Built once per process and passed down unchanged.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CONCURRENCY = 12
CACHE_TTL_DAYS = 30
DEFAULT_GLOBAL_PREFIX = "/usr/local"


def get_cache_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("LOCALAPPDATA", "~\\AppData\\Local"))
    else:
        base_dir = Path(os.getenv("XDG_CACHE_HOME", "~/.cache"))
    return base_dir.expanduser() / "clib"


class InstallConfig(BaseModel):
    """A validated, immutable configuration for one install invocation."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    # Layout
    out_dir: Path = Path("deps")
    prefix: Optional[Path] = None
    manifest_dir: Path = Field(default_factory=Path.cwd)
    cache_dir: Path = Field(default_factory=get_cache_dir)
    secrets_file: Path = Path("clib_secrets.json")

    # Behaviour flags
    quiet: bool = False
    verbose: bool = False
    dev: bool = False
    save: bool = False
    save_dev: bool = False
    force: bool = False
    skip_cache: bool = False
    global_install: bool = False

    # Network
    token: Optional[str] = None
    concurrency: int = DEFAULT_CONCURRENCY
    cache_ttl_days: int = CACHE_TTL_DAYS

    @field_validator("prefix")
    @classmethod
    def resolve_prefix(cls, v: Optional[Path]) -> Optional[Path]:
        """Prefixes are always stored as absolute paths."""
        return v.expanduser().resolve() if v else None

    @field_validator("cache_dir")
    @classmethod
    def expand_cache_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("concurrency", mode="before")
    @classmethod
    def default_concurrency(cls, v):
        """Unset or zero concurrency falls back to the default pool size."""
        if v is None or str(v).strip() in ("", "0"):
            return DEFAULT_CONCURRENCY
        return v

    @field_validator("concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v < 1 or v > 64:
            raise ValueError("Concurrency must be between 1 and 64.")
        return v

    @field_validator("cache_ttl_days")
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Cache TTL cannot be negative.")
        return v

    @field_validator("token")
    @classmethod
    def empty_token_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @property
    def sequential(self) -> bool:
        return self.concurrency <= 1

    @property
    def cache_ttl_seconds(self) -> int:
        return self.cache_ttl_days * 86400

    def install_root(self, prefix: Optional[Path] = None) -> Path:
        """Directory packages are installed into."""
        if self.global_install:
            return (prefix or self.prefix or Path(DEFAULT_GLOBAL_PREFIX)) / "include"
        return self.out_dir
