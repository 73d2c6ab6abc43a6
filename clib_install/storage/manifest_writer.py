"""
Records installed dependencies back into the project manifest.
"""

import json
import logging
import os
from pathlib import Path
from typing import Literal, Sequence

from clib_install.exceptions import ManifestWriteFailed
from clib_install.models.manifest import MANIFEST_NAMES

log = logging.getLogger(__name__)

Section = Literal["dependencies", "development"]
SECTIONS: tuple[str, ...] = ("dependencies", "development")


class ManifestWriter:
    """
    Writes `name -> version` into a section of the first manifest candidate
    that exists and parses. Other keys and the other section are left as they
    are.
    """

    def __init__(self, directory: Path, candidates: Sequence[str] = MANIFEST_NAMES):
        self.directory = directory
        self.candidates = tuple(candidates)

    def _write_candidate(self, path: Path, name: str, version: str, section: str) -> None:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"'{path.name}' is not a JSON object")

        deps = data.get(section)
        if not isinstance(deps, dict):
            deps = {}
            data[section] = deps
        deps[name] = version

        tmp_path = path.with_name(f".{path.name}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp_path, path)

    def record(self, name: str, version: str, section: Section = "dependencies") -> Path:
        """
        Saves a dependency into `section` of the project manifest.

        Returns:
            The manifest file that was written.

        Raises:
            ManifestWriteFailed: If no candidate could be updated.
        """
        if section not in SECTIONS:
            raise ValueError(f"Unknown manifest section: {section}")

        errors = []
        for candidate in self.candidates:
            path = self.directory / candidate
            if not path.is_file():
                continue
            try:
                self._write_candidate(path, name, version, section)
            except (OSError, ValueError) as e:
                log.debug(f"Could not save {name} to '{path}': {e}")
                errors.append(f"{candidate}: {e}")
                continue
            log.debug(f"Saved {name}@{version} to {section} in '{path}'.")
            return path

        detail = "; ".join(errors) or "no manifest file found"
        raise ManifestWriteFailed(f"Could not save '{name}' to a manifest ({detail}).")
