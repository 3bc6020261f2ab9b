from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Tuple

import pytest

from seqci.model import Command
from seqci.ui import console as console_module
from seqci.ui.console import Console, set_console


class RecordingExecutor:
    """Stands in for subprocess: records every call, returns scripted exit codes."""

    def __init__(self, exit_codes: Dict[str, int] | None = None):
        self.exit_codes = dict(exit_codes or {})
        self.calls: List[Tuple[str, Path, Dict[str, str]]] = []

    def __call__(self, command: Command, cwd: Path, env: Dict[str, str]) -> int:
        cmd = command if isinstance(command, str) else " ".join(command)
        self.calls.append((cmd, Path(cwd), dict(env)))
        return self.exit_codes.get(cmd, 0)

    @property
    def commands(self) -> List[str]:
        return [c for c, _, _ in self.calls]

    @property
    def cwds(self) -> List[Path]:
        return [cwd for _, cwd, _ in self.calls]


@pytest.fixture
def recorder():
    return RecordingExecutor()


@contextmanager
def quiet_console() -> Iterator[Console]:
    """Install a quiet global console, then put the previous one back."""
    previous = console_module._console
    quiet = Console(quiet=True)
    set_console(quiet)
    try:
        yield quiet
    finally:
        set_console(previous)


@pytest.fixture
def console():
    with quiet_console() as quiet:
        yield quiet
