"""Console output formatting utilities for seqci."""

from __future__ import annotations

import sys
from typing import Optional

from ..model import RunResult


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, quiet: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            quiet: If True, suppress everything except errors
        """
        self.debug = debug
        self.quiet = quiet

    def _out(self, text: str = "") -> None:
        if not self.quiet:
            print(text, flush=True)

    def print_run_started(
        self,
        repository: str,
        pipeline: str,
        step_count: int,
    ) -> None:
        """Print run start information."""
        self._out("\nRUN STARTED")
        self._out(f"Repository: {repository}")
        self._out(f"Pipeline: {pipeline}")
        self._out(f"Steps: {step_count}")
        self._out()

    def print_nested_start(self, fixture: str) -> None:
        self._out(f"\nFIXTURE: {fixture}")

    def print_step(self, name: str, cmd: str | None = None) -> None:
        """Print step start message (the `set -x` trace)."""
        self._out(f"STEP: {name}")
        if cmd:
            self._out(f"+ {cmd}")

    def print_step_skipped(self, name: str, reason: str) -> None:
        """Print the plan line for a step that will not execute."""
        self._out(f"STEP: {name} (skipped: {reason})")

    def print_tolerated(self, name: str, exit_code: int) -> None:
        """Print a failure that the step declared acceptable."""
        self._out(f"STATUS: tolerated failure (exit={exit_code})")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Step name
            reason: Failure reason/error message
            exit_code: Optional exit code
            hint: Optional hint for user
        """
        print(f"STEP FAILED: {name}", file=sys.stderr)
        if exit_code is not None:
            print(f"Exit code: {exit_code}", file=sys.stderr)
        if hint:
            print(f"Hint: {hint}", file=sys.stderr)
        if self.debug:
            print(f"Error details: {reason}", file=sys.stderr)
        else:
            # Show first line of error for non-debug mode
            error_line = reason.split('\n')[0] if reason else "Unknown error"
            print(f"Error: {error_line}", file=sys.stderr)

    def print_match(self, line: str) -> None:
        self._out(line)

    def print_result(self, result: RunResult) -> None:
        """Print final results summary."""
        self._out("\n" + "=" * 40)
        self._out("RESULTS")
        self._out("=" * 40)
        for record in result.records:
            status_display = record.status.upper() if record.status != "ok" else "SUCCESS"
            self._out(f"  {record.name}: {status_display}")
        self._out(f"\nRUN: {result}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Optional[Console]) -> None:
    """Set the global console instance."""
    global _console
    _console = console
