"""
Defines the command-line interface for the installer using Typer.
"""

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from clib_install import __version__
from clib_install.api.client import RegistryClient
from clib_install.core.install_engine import InstallEngine
from clib_install.exceptions import ClibInstallError, TargetInstallFailed
from clib_install.models.config import InstallConfig
from clib_install.models.manifest import load_local_manifest
from clib_install.models.stats import InstallStats
from clib_install.registry.resolver import RegistryResolver
from clib_install.storage.cache import PackageCache
from clib_install.storage.config_manager import CONFIG_FILE, ConfigManager
from clib_install.storage.manifest_writer import ManifestWriter
from clib_install.storage.secrets import Secrets

from .formatters import format_error_with_suggestions, print_summary_panel

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("clib_install")

app = typer.Typer(
    name="clib-install",
    help="Install C packages and their dependencies from clib registries.",
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold]clib-install[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()


async def run_install(
    config: InstallConfig, targets: list[str], stats: InstallStats
) -> bool:
    """
    Loads the root manifest, secrets and registries once, then installs every
    target. Returns False when a target failed.
    """
    secrets = Secrets.load(config.secrets_file)
    root = load_local_manifest(config.manifest_dir)
    cache = PackageCache(
        config.cache_dir,
        max_age_days=config.cache_ttl_days,
        skip_cache=config.skip_cache,
        stats_callback=stats.record_cache,
    )

    async with RegistryClient(secrets, config.token, config.concurrency) as client:
        resolver = RegistryResolver.from_urls(root.registries if root else [], secrets)
        await resolver.fetch_registries(client)

        engine = InstallEngine(
            config,
            resolver,
            client,
            cache,
            root=root,
            writer=ManifestWriter(config.manifest_dir),
            stats=stats,
        )
        try:
            await engine.install_targets(targets)
        except TargetInstallFailed as e:
            log.error(f"[red]✗ Unable to install package {e.identifier}[/red]")
            console.print(format_error_with_suggestions(e))
            return False
    return True


@app.command()
def install(
    slugs: list[str] | None = typer.Argument(  # noqa: B008
        None,
        help="Packages to install ([owner/]name[@version]) or '.' for this project.",
        metavar="[NAME ...]",
    ),
    out: Path | None = typer.Option(
        None, "-o", "--out", help="Change the output directory [deps]."
    ),
    prefix: Path | None = typer.Option(
        None,
        "-P",
        "--prefix",
        help="Change the prefix directory (usually '/usr/local').",
    ),
    quiet: bool = typer.Option(False, "-q", "--quiet", help="Disable verbose output."),
    dev: bool = typer.Option(
        False, "-d", "--dev", help="Install development dependencies."
    ),
    save: bool = typer.Option(
        False, "-S", "--save", help="Save dependency in clib.json or package.json."
    ),
    save_dev: bool = typer.Option(
        False,
        "-D",
        "--save-dev",
        help="Save development dependency in clib.json or package.json.",
    ),
    force: bool = typer.Option(
        False, "-f", "--force", help="Overwrite files of already installed packages."
    ),
    skip_cache: bool = typer.Option(
        False, "-c", "--skip-cache", help="Skip cache when installing."
    ),
    global_install: bool = typer.Option(
        False,
        "-g",
        "--global",
        help="Global install, don't write to output dir (default: deps/).",
    ),
    token: str | None = typer.Option(
        None, "-t", "--token", help="Access token used to read private content."
    ),
    concurrency: int | None = typer.Option(
        None, "-C", "--concurrency", help="Set concurrency (default: 12)."
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Show debug output."),
    clear_cache: bool = typer.Option(
        False, "--clear-cache", help="Clear the package cache and exit."
    ),
    version: bool = typer.Option(  # noqa: ARG001
        False,
        "--version",
        help="Show version and exit.",
        is_eager=True,
        callback=_version_callback,
    ),
):
    """Install packages and their dependencies."""
    log_level = "DEBUG" if verbose else "WARNING" if quiet else "INFO"
    logging.getLogger("clib_install").setLevel(log_level)

    cli_options = {
        "out_dir": out,
        "prefix": prefix,
        "quiet": quiet,
        "verbose": verbose,
        "dev": dev,
        "save": save,
        "save_dev": save_dev,
        "force": force,
        "skip_cache": skip_cache,
        "global_install": global_install,
        "token": token,
        "concurrency": concurrency,
    }

    try:
        config = ConfigManager(CONFIG_FILE).load_config(cli_options)
    except ClibInstallError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e

    if clear_cache:
        cache = PackageCache(config.cache_dir)
        if cache.clear():
            console.print("[green]✓ Cache cleared successfully.[/green]")
            raise typer.Exit()
        console.print("[red]✗ Failed to clear cache.[/red]")
        raise typer.Exit(code=1)

    stats = InstallStats()
    try:
        succeeded = asyncio.run(run_install(config, slugs or [], stats))
    except ClibInstallError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e

    if not quiet:
        print_summary_panel(stats, console)
    if not succeeded:
        raise typer.Exit(code=1)
