"""
Loads registry access tokens from the secrets file (host -> token).
"""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from clib_install.exceptions import ConfigurationError
from clib_install.utils.urls import url_host

log = logging.getLogger(__name__)


class Secrets:
    """Read-only mapping from registry host to bearer token."""

    def __init__(self, tokens: Optional[Mapping[str, str]] = None):
        self._tokens = MappingProxyType(
            {host.lower(): token for host, token in (tokens or {}).items()}
        )

    @classmethod
    def load(cls, path: Path) -> "Secrets":
        """
        Reads the secrets file. A missing file yields an empty store.

        Raises:
            ConfigurationError: If the file exists but is not a JSON object of
            strings.
        """
        if not path.is_file():
            log.debug(f"No secrets file at '{path}'.")
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise ConfigurationError(f"Could not read secrets file '{path}': {e}") from e

        if not isinstance(data, dict) or not all(
            isinstance(v, str) for v in data.values()
        ):
            raise ConfigurationError(
                f"Secrets file '{path}' must map hosts to token strings."
            )
        log.debug(f"Loaded {len(data)} registry secrets.")
        return cls(data)

    def get(self, host: str) -> Optional[str]:
        return self._tokens.get(host.lower())

    def for_url(self, url: str) -> Optional[str]:
        return self.get(url_host(url))

    def __len__(self) -> int:
        return len(self._tokens)
