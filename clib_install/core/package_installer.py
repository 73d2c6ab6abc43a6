"""
Writes a single resolved package's files into the install directory, from the
package cache when possible and from its repository otherwise.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from pathlib import Path, PurePosixPath

import aiofiles
from pathvalidate import sanitize_filename

from clib_install.models.config import InstallConfig
from clib_install.models.package import PackageDescriptor
from clib_install.models.stats import InstallStats
from clib_install.storage.cache import PackageCache

log = logging.getLogger(__name__)

INSTALLED_MANIFEST = "package.json"


class PackageInstaller:
    """Handles the file-install step of one package."""

    def __init__(
        self,
        config: InstallConfig,
        client,
        cache: PackageCache,
        stats: InstallStats,
        slot: Callable[[], AbstractAsyncContextManager],
    ):
        """
        Args:
            config: The run configuration.
            client: Transport used to fetch package files.
            cache: Package content cache.
            stats: Session statistics to update.
            slot: Returns the context manager bounding concurrent fetches.
        """
        self.config = config
        self.client = client
        self.cache = cache
        self.stats = stats
        self._slot = slot

    @staticmethod
    def destination(descriptor: PackageDescriptor, install_root: Path) -> Path:
        return install_root / sanitize_filename(descriptor.install_name)

    @staticmethod
    def is_installed(package_dir: Path) -> bool:
        return (package_dir / INSTALLED_MANIFEST).is_file()

    async def install(self, descriptor: PackageDescriptor, install_root: Path) -> bool:
        """
        Installs the package's files.

        Returns:
            False when the package was already on disk and `force` is unset,
            True when files were written.

        Raises:
            FetchFailedError: If a file cannot be downloaded.
            OSError: If the destination cannot be written.
        """
        package_dir = self.destination(descriptor, install_root)

        if not self.config.force and self.is_installed(package_dir):
            log.info(f"[dim]already installed[/dim] {descriptor.identifier}")
            return False

        if hit := self.cache.get_package(descriptor.key):
            await self.cache.copy_package(hit, package_dir)
            self.stats.packages_from_cache += 1
            log.info(f"[cyan]cached[/cyan] {descriptor.key} -> {package_dir}")
            return True

        await asyncio.to_thread(package_dir.mkdir, parents=True, exist_ok=True)
        await asyncio.gather(
            *(self._fetch_file(descriptor, package_dir, path) for path in descriptor.src)
        )

        async with aiofiles.open(package_dir / INSTALLED_MANIFEST, "w") as f:
            await f.write(json.dumps(dict(descriptor.manifest), indent=2) + "\n")

        await self.cache.put_package(descriptor.key, package_dir)
        log.info(f"[green]install[/green] {descriptor.key} -> {package_dir}")
        return True

    async def _fetch_file(
        self, descriptor: PackageDescriptor, package_dir: Path, path: str
    ) -> None:
        async with self._slot():
            log.debug(f"fetch {descriptor.identifier}:{path}")
            content = await self.client.fetch_package_file(
                descriptor.identifier, descriptor.href, descriptor.version, path
            )

        destination = package_dir / sanitize_filename(PurePosixPath(path).name)
        async with aiofiles.open(destination, "wb") as f:
            await f.write(content)
        self.stats.files_written += 1
