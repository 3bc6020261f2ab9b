# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

Command = Union[str, Sequence[str]]


@dataclass(frozen=True)
class Step:
    """A single command (step) inside a pipeline."""
    name: str
    run: Command = ""
    cwd: str | None = None

    # `|| :` in the shell scripts: a non-zero exit is recorded, not fatal
    tolerate_failure: bool = False
    # resolved from env/feature toggles when the pipeline is defined
    enabled: bool = True
    # optional collaborator: skip silently when this path is absent
    only_if_exists: str | None = None

    env: Dict[str, str] = field(default_factory=dict)

    # "shell" | "marker" | "fixtures" | "per_target"
    kind: str = "shell"
    data: Optional[Dict[str, Any]] = None

    def display_cmd(self) -> str:
        if isinstance(self.run, str):
            return self.run
        return " ".join(self.run)


@dataclass
class Pipeline:
    """An ordered list of steps plus the env overlay they run with."""
    name: str
    steps: list[Step]
    env: Dict[str, str] = field(default_factory=dict)


@dataclass
class StepRecord:
    name: str
    status: str  # "ok" | "skipped" | "tolerated" | "failed"
    exit_code: Optional[int] = None
    duration: float = 0.0


@dataclass
class RunResult:
    """
    Terminal state of one Run.

    status is "success" or "failed"; on failure the offending step's name,
    index and exit code are filled in.
    """
    status: str
    records: List[StepRecord] = field(default_factory=list)
    failed_step: Optional[str] = None
    failed_index: Optional[int] = None
    exit_code: int = 0
    cwd: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def executed(self) -> list[str]:
        """Names of steps that actually ran (not skipped)."""
        return [r.name for r in self.records if r.status != "skipped"]

    def __str__(self) -> str:
        if self.ok:
            return "success"
        return f"failed-at-step({self.failed_step})"
