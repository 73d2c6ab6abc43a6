"""
Functions for formatting and displaying data in the console using Rich.
"""

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from clib_install.models.stats import InstallStats


def format_duration(seconds: float) -> str:
    """Formats a duration in seconds into a short string (e.g., '1m 12s')."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s" if minutes else f"{secs}s"


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "PackageNotFoundError": [
            "• Check the spelling of the package slug (owner/name).",
            "• Add the registry that lists it to 'registries' in clib.json.",
        ],
        "LocalPathInvalidError": [
            "• Run the command from a directory containing clib.json or package.json.",
            "• Point the path at a manifest file or a directory holding one.",
        ],
        "FetchFailedError": [
            "• Check your internet connection.",
            "• Private repositories need a token (--token or clib_secrets.json).",
            "• Re-run with --skip-cache if cached data looks outdated.",
        ],
        "ManifestParseError": [
            "• The manifest is not valid JSON or has fields of the wrong type.",
        ],
        "ConfigurationError": [
            "• Check the settings file and the command-line flags.",
        ],
    }

    cause = getattr(error, "cause", None)
    lookup = type(cause).__name__ if cause is not None else error_type
    suggestions = suggestions_map.get(
        lookup, ["• Run the command with --verbose for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_summary_panel(stats: InstallStats, console: Console | None = None):
    """Displays the final summary of the install session."""
    console = console or Console()

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right", width=20)
    table.add_column(style="white", justify="left")

    table.add_row("✓ Installed:", f"[bold green]{stats.packages_installed}[/bold green]")
    if stats.packages_from_cache:
        table.add_row("⟳ From cache:", f"[cyan]{stats.packages_from_cache}[/cyan]")
    if stats.packages_already_installed:
        table.add_row(
            "○ Already installed:",
            f"[yellow]{stats.packages_already_installed}[/yellow]",
        )
    if stats.packages_failed:
        table.add_row("✗ Failed:", f"[bold red]{stats.packages_failed}[/bold red]")

    table.add_row("", "")
    table.add_row("Files written:", str(stats.files_written))
    table.add_row(
        "Cache:", f"{stats.cache_hits} hits / {stats.cache_misses} misses"
    )
    if stats.manifest_saves:
        table.add_row("Saved to manifest:", str(stats.manifest_saves))
    table.add_row("Time Elapsed:", f"[blue]{format_duration(stats.elapsed)}[/blue]")

    if stats.succeeded:
        title, border_color = "[bold]Install Complete[/bold]", "green"
    else:
        title, border_color = "[bold]Install Failed[/bold]", "red"

    console.print()
    console.print(
        Panel(
            table,
            title=title,
            border_style=border_color,
            box=box.ROUNDED,
            expand=False,
            padding=(1, 2),
        )
    )
