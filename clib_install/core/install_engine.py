"""
The install engine: resolves targets, walks dependency trees depth-first with a
run-scoped visited set, and tracks each package through its install states.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager, nullcontext
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Dict, List, Mapping, Optional, Sequence, Tuple

from clib_install.exceptions import (
    ClibInstallError,
    DependencyInstallFailed,
    FetchFailedError,
    InstallAbortedError,
    InstallError,
    LocalPathInvalidError,
    ManifestParseError,
    ManifestWriteFailed,
    PackageNotFoundError,
    TargetInstallFailed,
)
from clib_install.models.config import InstallConfig
from clib_install.models.manifest import Manifest, parse_manifest
from clib_install.models.package import (
    PackageDescriptor,
    PackageIdentifier,
    is_local_target,
    normalize_version,
    parse_slug,
)
from clib_install.models.stats import InstallStats
from clib_install.registry.resolver import DownloadReference, RegistryResolver
from clib_install.storage.cache import PackageCache
from clib_install.storage.manifest_writer import ManifestWriter

from .package_installer import PackageInstaller

log = logging.getLogger(__name__)


class InstallState(Enum):
    """States of one package within a run."""

    PENDING = "pending"
    RESOLVING = "resolving"
    FETCHING = "fetching"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ALREADY_INSTALLED = "already_installed"
    NOT_FOUND = "not_found"
    FETCH_FAILED = "fetch_failed"
    INSTALL_FAILED = "install_failed"


FAILED_STATES = frozenset(
    {InstallState.NOT_FOUND, InstallState.FETCH_FAILED, InstallState.INSTALL_FAILED}
)
DONE_STATES = FAILED_STATES | {InstallState.INSTALLED}


@dataclass
class InstallRun:
    """
    State scoped to one invocation: the visited set, per-package states and the
    abort flag. Released when the invocation ends.
    """

    config: InstallConfig
    prefix: Optional[Path] = None
    visited: set[PackageIdentifier] = field(default_factory=set)
    states: Dict[PackageIdentifier, InstallState] = field(default_factory=dict)
    transitions: List[Tuple[PackageIdentifier, InstallState]] = field(
        default_factory=list
    )
    versions: Dict[PackageIdentifier, str] = field(default_factory=dict)
    descriptors: Dict[PackageIdentifier, PackageDescriptor] = field(
        default_factory=dict, repr=False
    )
    aborted: bool = False
    closed: bool = False
    _completed: Dict[PackageIdentifier, asyncio.Event] = field(
        default_factory=dict, repr=False
    )
    # (blocked ancestor chain, awaited identifier) for every pending join
    _waits: List[Tuple[Tuple[PackageIdentifier, ...], PackageIdentifier]] = field(
        default_factory=list, repr=False
    )
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def claim(self, identifier: PackageIdentifier) -> bool:
        """
        Atomically marks `identifier` visited. Exactly one caller wins; every
        other caller gets False.
        """
        async with self._lock:
            if identifier in self.visited:
                return False
            self.visited.add(identifier)
            self._completed[identifier] = asyncio.Event()
            self.states[identifier] = InstallState.PENDING
            self.transitions.append((identifier, InstallState.PENDING))
            return True

    def transition(self, identifier: PackageIdentifier, state: InstallState) -> None:
        self.states[identifier] = state
        self.transitions.append((identifier, state))
        if state in FAILED_STATES:
            self.aborted = True
        if state in DONE_STATES and identifier in self._completed:
            self._completed[identifier].set()

    def is_done(self, identifier: PackageIdentifier) -> bool:
        return self.states.get(identifier) in DONE_STATES

    def _waits_on(self, identifier: PackageIdentifier, targets: frozenset) -> bool:
        """True if `identifier` is blocked, directly or transitively, on `targets`."""
        seen = set()
        stack = [identifier]
        while stack:
            current = stack.pop()
            if current in targets:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(awaited for chain, awaited in self._waits if current in chain)
        return False

    async def wait_for(
        self, identifier: PackageIdentifier, ancestors: Tuple[PackageIdentifier, ...]
    ) -> bool:
        """
        Waits until the branch that claimed `identifier` finishes it.

        Returns:
            True once the package reached a final state. False without waiting
            when `identifier` is an ancestor of the caller, or is itself waiting
            on one, since the wait could then never end.
        """
        event = self._completed[identifier]
        if event.is_set():
            return True
        if identifier in ancestors or self._waits_on(identifier, frozenset(ancestors)):
            return False

        wait = (ancestors, identifier)
        self._waits.append(wait)
        try:
            await event.wait()
        finally:
            self._waits.remove(wait)
        return True

    def note(self, identifier: PackageIdentifier, state: InstallState) -> None:
        """Records an event without changing the claimed package's state."""
        self.transitions.append((identifier, state))

    def order_of(self, state: InstallState) -> List[PackageIdentifier]:
        return [ident for ident, s in self.transitions if s is state]

    @property
    def install_root(self) -> Path:
        return self.config.install_root(self.prefix)

    def release(self) -> None:
        self.visited.clear()
        self.versions.clear()
        self.descriptors.clear()
        self._completed.clear()
        self._waits.clear()
        self.closed = True


class InstallEngine:
    """Orchestrates resolution, recursive installs and manifest write-back."""

    def __init__(
        self,
        config: InstallConfig,
        resolver: RegistryResolver,
        client,
        cache: PackageCache,
        root: Optional[Manifest] = None,
        writer: Optional[ManifestWriter] = None,
        stats: Optional[InstallStats] = None,
    ):
        self.config = config
        self.resolver = resolver
        self.client = client
        self.cache = cache
        self.root = root
        self.writer = writer or ManifestWriter(config.manifest_dir)
        self.stats = stats or InstallStats()
        self._semaphore = (
            None if config.sequential else asyncio.Semaphore(config.concurrency)
        )
        self.installer = PackageInstaller(
            config, client, cache, self.stats, slot=self._slot
        )

    def _slot(self):
        """Bounds concurrent fetches; a no-op when running sequentially."""
        return self._semaphore if self._semaphore else nullcontext()

    def _resolve_prefix(self) -> Optional[Path]:
        if self.config.prefix:
            return self.config.prefix
        if self.root and self.root.prefix:
            prefix = Path(self.root.prefix).expanduser()
            if not prefix.is_absolute():
                prefix = self.config.manifest_dir / prefix
            return prefix.resolve()
        return None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[InstallRun]:
        """
        Opens an install run. The resolved prefix is exported as PREFIX before
        any install step runs.
        """
        run = InstallRun(self.config, prefix=self._resolve_prefix())
        if run.prefix:
            os.environ["PREFIX"] = str(run.prefix)
            log.debug(f"set PREFIX={run.prefix}")
        try:
            yield run
        finally:
            run.release()

    async def install_targets(self, targets: Sequence[str]) -> None:
        """
        Installs explicit targets left to right. The first failing target aborts
        the rest.

        Raises:
            TargetInstallFailed: Naming the target that failed.
        """
        targets = list(targets) or ["."]
        async with self.session() as run:
            for index, target in enumerate(targets):
                log.debug(f"install {target} ({index})")
                try:
                    await self.install_target(run, target)
                except InstallError as e:
                    self.stats.failed_targets.append(target)
                    raise TargetInstallFailed(target, e) from e

    async def install_target(self, run: InstallRun, slug: str) -> None:
        if is_local_target(slug):
            manifest = self._root_manifest(slug)
            await self.install_dependencies(run, manifest.dependencies, owner=slug)
            if self.config.dev:
                await self.install_dependencies(run, manifest.development, owner=slug)
            return

        try:
            identifier, version = parse_slug(slug)
        except ValueError as e:
            raise PackageNotFoundError(slug) from e

        await self.install_package(
            run, identifier, version, include_dev=self.config.dev
        )

        if self.config.save:
            self._save(run, identifier, version, "dependencies")
        if self.config.save_dev:
            self._save(run, identifier, version, "development")

    def _root_manifest(self, slug: str) -> Manifest:
        """Every local target form installs the current project's manifest."""
        if self.root is None:
            raise LocalPathInvalidError(
                slug,
                "No clib.json or package.json found in "
                f"'{self.config.manifest_dir}'.",
            )
        return self.root

    def _save(
        self, run: InstallRun, identifier: PackageIdentifier, version: str, section: str
    ) -> None:
        version = run.versions.get(identifier, version)
        try:
            path = self.writer.record(identifier.id, version, section)
        except ManifestWriteFailed as e:
            log.warning(f"[yellow]{e}[/yellow]")
            return
        self.stats.manifest_saves += 1
        log.info(f"[green]saved[/green] {identifier}@{version} to {path.name}")

    async def install_dependencies(
        self,
        run: InstallRun,
        dependencies: Mapping[str, str],
        owner: object = None,
        ancestors: Tuple[PackageIdentifier, ...] = (),
    ) -> None:
        """
        Installs every dependency of one package. Siblings run concurrently when
        the pool allows; all of them finish before this returns or raises.
        `ancestors` is the chain of packages waiting on these dependencies.
        """
        targets = []
        for name, version_range in dependencies.items():
            try:
                identifier, _ = parse_slug(name)
            except ValueError as e:
                raise PackageNotFoundError(name) from e
            targets.append((identifier, normalize_version(version_range)))

        if not targets:
            return
        log.debug(f"{owner or 'project'}: {len(targets)} dependencies")

        if self._semaphore is None:
            for identifier, version in targets:
                await self.install_package(
                    run, identifier, version, ancestors=ancestors
                )
            return

        results = await asyncio.gather(
            *(
                self.install_package(run, ident, ver, ancestors=ancestors)
                for ident, ver in targets
            ),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            raise self._primary_failure(failures)

    @staticmethod
    def _primary_failure(failures: List[BaseException]) -> BaseException:
        """The failure to report for a set of sibling failures."""
        for failure in failures:
            if not isinstance(failure, ClibInstallError):
                return failure
        for failure in failures:
            if not isinstance(failure, InstallAbortedError):
                return failure
        return failures[0]

    async def install_package(
        self,
        run: InstallRun,
        identifier: PackageIdentifier,
        version: str,
        include_dev: bool = False,
        ancestors: Tuple[PackageIdentifier, ...] = (),
    ) -> None:
        """
        Installs one package and, before its own files, its whole dependency
        subtree. A package claimed by another branch is joined: this returns
        only once that branch has installed it.
        """
        if run.aborted:
            raise InstallAbortedError(identifier)

        if not await run.claim(identifier):
            await self._join(run, identifier, version, include_dev, ancestors)
            return

        try:
            await self._install_claimed(
                run, identifier, version, include_dev, ancestors
            )
        finally:
            if not run.is_done(identifier):
                self._fail(run, identifier, InstallState.INSTALL_FAILED)

    async def _join(
        self,
        run: InstallRun,
        identifier: PackageIdentifier,
        version: str,
        include_dev: bool,
        ancestors: Tuple[PackageIdentifier, ...],
    ) -> None:
        """Handles an identifier another branch or an earlier target claimed."""
        done = await run.wait_for(identifier, ancestors)
        if done and run.states[identifier] in FAILED_STATES:
            raise InstallAbortedError(identifier)

        if self.config.force and done:
            await self._reinstall(run, identifier, version)
        else:
            run.note(identifier, InstallState.ALREADY_INSTALLED)
            self.stats.packages_already_installed += 1
            log.debug(f"{identifier} already visited in this run")

        descriptor = run.descriptors.get(identifier)
        if include_dev and done and descriptor is not None:
            await self.install_dependencies(
                run,
                descriptor.development,
                owner=identifier,
                ancestors=ancestors + (identifier,),
            )

    async def _install_claimed(
        self,
        run: InstallRun,
        identifier: PackageIdentifier,
        version: str,
        include_dev: bool,
        ancestors: Tuple[PackageIdentifier, ...],
    ) -> None:
        run.transition(identifier, InstallState.RESOLVING)
        reference = self.resolver.find(identifier)
        if reference is None:
            self._fail(run, identifier, InstallState.NOT_FOUND)
            raise PackageNotFoundError(identifier)

        run.transition(identifier, InstallState.FETCHING)
        try:
            descriptor = await self._describe(reference, version)
        except (FetchFailedError, ManifestParseError):
            self._fail(run, identifier, InstallState.FETCH_FAILED)
            raise
        run.versions[identifier] = descriptor.resolved_version
        run.descriptors[identifier] = descriptor

        try:
            await self.install_dependencies(
                run,
                descriptor.dependency_slugs(include_dev),
                owner=identifier,
                ancestors=ancestors + (identifier,),
            )
        except InstallError as e:
            self._fail(run, identifier, InstallState.INSTALL_FAILED)
            raise DependencyInstallFailed(
                identifier, getattr(e, "failed", e.identifier)
            ) from e

        run.transition(identifier, InstallState.INSTALLING)
        try:
            await self.installer.install(descriptor, self._install_root(run, descriptor))
        except FetchFailedError:
            self._fail(run, identifier, InstallState.INSTALL_FAILED)
            raise
        except OSError as e:
            self._fail(run, identifier, InstallState.INSTALL_FAILED)
            raise InstallError(identifier, f"Could not write {identifier}: {e}") from e

        run.transition(identifier, InstallState.INSTALLED)
        self.stats.packages_installed += 1

    async def _reinstall(
        self, run: InstallRun, identifier: PackageIdentifier, version: str
    ) -> None:
        """
        Forced re-install of a package already visited in this run: its own
        files are fetched again, its dependencies are not revisited.
        """
        reference = self.resolver.find(identifier)
        if reference is None:
            raise PackageNotFoundError(identifier)
        log.debug(f"re-installing {identifier} (forced)")
        descriptor = await self._describe(reference, version)
        try:
            await self.installer.install(descriptor, self._install_root(run, descriptor))
        except OSError as e:
            raise InstallError(identifier, f"Could not write {identifier}: {e}") from e

    def _fail(
        self, run: InstallRun, identifier: PackageIdentifier, state: InstallState
    ) -> None:
        run.transition(identifier, state)
        self.stats.packages_failed += 1
        log.error(f"[red]✗ {identifier}: {state.value.replace('_', ' ')}[/red]")

    def _install_root(self, run: InstallRun, descriptor: PackageDescriptor) -> Path:
        if self.config.global_install and descriptor.prefix:
            return self.config.install_root(Path(descriptor.prefix).expanduser())
        return run.install_root

    async def _describe(
        self, reference: DownloadReference, version: str
    ) -> PackageDescriptor:
        """Builds a descriptor from the package's manifest, cached by key."""
        identifier = reference.identifier
        key = f"{identifier}@{version}"

        if hit := self.cache.get(key):
            log.debug(f"Loaded manifest for '{key}' from cache.")
            manifest = parse_manifest(hit.content, identifier)
        else:
            async with self._slot():
                log.info(f"[cyan]fetch[/cyan] {key}")
                data = await self.client.fetch_package_manifest(
                    identifier, reference.href, version
                )
            manifest = parse_manifest(data, identifier)
            self.cache.put(key, data)

        return manifest.to_descriptor(identifier, version, reference.href)
