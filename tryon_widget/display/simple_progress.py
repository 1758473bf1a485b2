"""Line-by-line progress display for the CLI.

Prints a new line per change instead of updating in place, so output stays
readable when piped. All output goes to stderr; stdout is kept for JSON.
"""

from typing import Optional

from rich.console import Console

from ..models import CartResult, ItemStatus, OutfitResult

_console = Console(stderr=True)


def _bar(progress: int) -> str:
    filled = int(progress / 5)  # 100% = 20 blocks
    return "█" * filled + "░" * (20 - filled)


def print_header(mode: str, garment_count: int, shop: str):
    """Print the generation header."""
    _console.print()
    _console.print("━" * 55, style="cyan")
    _console.print(f" 👗 VIRTUAL TRY-ON ({mode.upper()})", style="bold cyan")
    _console.print("━" * 55, style="cyan")
    _console.print()
    _console.print(f" [dim]Garments:[/dim] {garment_count}")
    _console.print(f" [dim]Store:[/dim]    {shop or 'unknown'}")
    _console.print()


class ProgressPrinter:
    """Orchestrator listener printing a line whenever progress or status changes."""

    def __init__(self):
        self._last: Optional[tuple] = None

    def __call__(self, orchestrator) -> None:
        batch = orchestrator.batch_progress
        counts = f" {batch.completed}/{batch.total} done, {batch.failed} failed" if batch else ""
        line = (orchestrator.progress, orchestrator.status_message, counts)
        if line == self._last:
            return
        self._last = line

        if orchestrator.status_variant == "error":
            indicator = "[red]✗[/red]"
        elif orchestrator.progress >= 100:
            indicator = "[green]✓[/green]"
        elif orchestrator.is_generating:
            indicator = "[yellow]⏳[/yellow]"
        else:
            indicator = "[dim]○[/dim]"

        _console.print(
            f" [cyan]{_bar(orchestrator.progress)}[/cyan] {orchestrator.progress:>3}%  "
            f"{indicator} {orchestrator.status_message}[dim]{counts}[/dim]"
        )


def print_error(message: str):
    """Print an error message."""
    _console.print()
    _console.print("━" * 55, style="red")
    _console.print(" ❌ ERROR", style="bold red")
    _console.print("━" * 55, style="red")
    _console.print()
    _console.print(f" {message}", style="red")
    _console.print()


def print_result(result):
    """Print a cart or outfit result."""
    _console.print()
    if isinstance(result, OutfitResult):
        _console.print("━" * 55, style="green")
        _console.print(" ✨ OUTFIT COMPLETE", style="bold green")
        _console.print("━" * 55, style="green")
        _console.print()
        _console.print(f" [bold cyan]🖼  Image:[/bold cyan] {_describe(result.image.src)}")
        if result.garment_types:
            _console.print(f" [dim]Garments:[/dim] {', '.join(result.garment_types)}")
        _console.print(f" [dim]Cached:[/dim] {'yes' if result.cached else 'no'}  "
                       f"[dim]Credits:[/dim] {result.credits_deducted}  "
                       f"[dim]Time:[/dim] {result.processing_time / 1000:.1f}s")
        _console.print()
        return

    if isinstance(result, CartResult):
        summary = result.summary
        style = "green" if summary.failed == 0 else "yellow"
        title = " ✨ CART COMPLETE" if summary.failed == 0 else " ⚠️  PARTIAL SUCCESS"
        _console.print("━" * 55, style=style)
        _console.print(title, style=f"bold {style}")
        _console.print("━" * 55, style=style)
        _console.print()
        for item in result.results:
            if item.status is ItemStatus.SUCCESS:
                cached = " [dim](cached)[/dim]" if item.cached else ""
                _console.print(f" [green]✓[/green] #{item.index + 1} {_describe(item.image.src if item.image else None)}{cached}")
            elif item.status is ItemStatus.ERROR:
                _console.print(f" [red]✗[/red] #{item.index + 1} {item.error_message or 'Generation failed'}")
            else:
                _console.print(f" [dim]○[/dim] #{item.index + 1} pending")
        _console.print()
        _console.print(f" [dim]{summary.successful} succeeded, {summary.failed} failed, {summary.cached} cached[/dim]")
        _console.print()


def _describe(src: Optional[str]) -> str:
    if not src:
        return "(no image)"
    if src.startswith("data:"):
        return f"inline image ({len(src) // 1024} KB data URL)"
    return src
