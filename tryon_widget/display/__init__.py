"""Terminal rendering of orchestrator state."""

from .simple_progress import ProgressPrinter, print_error, print_header, print_result

__all__ = ["ProgressPrinter", "print_error", "print_header", "print_result"]
