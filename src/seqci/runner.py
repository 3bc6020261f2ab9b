# runner.py
from __future__ import annotations

import os
import runpy
import subprocess
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from . import dsl
from .model import Command, Pipeline, RunResult, Step, StepRecord
from .ui.console import Console, get_console

# A pipeline file runs the same way on a laptop and in CI: top to bottom,
# stop at the first step that fails.


@dataclass
class CIError(Exception):
    """
    Structured CI error for configuration problems (bad pipeline file,
    unknown step kind, missing working directory). Never raised for a
    command that simply exits non-zero; that is a StepFailure.
    """
    kind: str
    step: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


TOOL_HINTS = {
    "cargo": "Install Rust via rustup (https://rustup.rs) or fix PATH.",
    "rustup": "Install rustup (https://rustup.rs) or fix PATH.",
    "cargo-careful": "Install it with `cargo install cargo-careful`.",
    "nix": "Install Nix (https://nixos.org/download) or drop the nix build step.",
    "git": "Install Git or fix PATH.",
    "grep": "Install GNU grep or fix PATH.",
}

# shell conventions for "not found" and "not executable"
EXIT_NOT_FOUND = 127
EXIT_NOT_EXECUTABLE = 126
MAX_NESTING = 8


@dataclass
class StepFailure(Exception):
    step: str
    cmd: str
    exit_code: int
    message: str = ""

    def __str__(self) -> str:
        text = f"step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"
        if self.message:
            text += f"\n{self.message}"
        return text

    @property
    def hint(self) -> Optional[str]:
        if self.exit_code != EXIT_NOT_FOUND or not self.cmd:
            return None
        program = self.cmd.split()[0]
        return TOOL_HINTS.get(program, f"Install {program} or fix PATH.")


Executor = Callable[[Command, Path, Dict[str, str]], int]


def subprocess_executor(command: Command, cwd: Path, env: Dict[str, str]) -> int:
    """
    Run one external command to completion and return its exit status.

    Strings go through the shell (pipes, globs, `&&` work like in the old
    scripts); sequences are executed as an argv. Output streams straight to
    the terminal.
    """
    shell = isinstance(command, str)
    try:
        proc = subprocess.run(
            command if shell else list(command),
            shell=shell,
            cwd=str(cwd),
            env=env,
        )
    except FileNotFoundError:
        return EXIT_NOT_FOUND
    except PermissionError:
        return EXIT_NOT_EXECUTABLE

    if proc.returncode < 0:
        # killed by signal N -> 128 + N, same as sh
        return 128 - proc.returncode
    return proc.returncode


@contextmanager
def working_dir(path: str | Path) -> Iterator[Path]:
    """
    Scope a working directory for a run.

    Yields the resolved directory. The process cwd is never touched, so
    whatever happens inside the block, siblings see the same cwd.
    """
    resolved = Path(path).expanduser().resolve()
    if not resolved.is_dir():
        raise CIError(
            kind="missing_cwd",
            step=None,
            message=f"working directory not found: {resolved}",
        )
    yield resolved


@dataclass
class RunContext:
    """Everything a step kind needs to execute one step."""
    cwd: Path
    overlay: Dict[str, str]
    executor: Executor
    console: Console
    steps: List[Step]
    depth: int = 0

    def env_for(self, step: Step) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(self.overlay)
        env.update(step.env or {})
        return env

    def cwd_for(self, step: Step) -> Path:
        cwd = (self.cwd / (step.cwd or ".")).resolve()
        if not cwd.is_dir():
            raise CIError(
                kind="missing_cwd",
                step=step.name,
                message=f"step cwd not found: {cwd}",
            )
        return cwd

    def run_nested(self, cwd: Path) -> RunResult:
        """Re-run the current pipeline from another directory."""
        if self.depth >= MAX_NESTING:
            raise CIError(
                kind="nesting_too_deep",
                step=None,
                message=f"fixtures nested more than {MAX_NESTING} levels",
                details={"cwd": str(cwd)},
            )
        return run(
            self.steps,
            self.overlay,
            cwd=cwd,
            executor=self.executor,
            console=self.console,
            _depth=self.depth + 1,
            nested_steps=self.steps,
        )


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _run_shell_step(ctx: RunContext, step: Step) -> None:
    cwd = ctx.cwd_for(step)
    exit_code = ctx.executor(step.run, cwd, ctx.env_for(step))
    if exit_code != 0:
        raise StepFailure(step=step.name, cmd=step.display_cmd(), exit_code=exit_code)


def _step_runner(step: Step) -> Callable[[RunContext, Step], None]:
    # Import here to avoid circular import
    from .step_workflows import cargo, fixtures, markers

    kinds = {
        "shell": _run_shell_step,
        "marker": markers.run_step,
        "fixtures": fixtures.run_step,
        "per_target": cargo.run_step,
    }
    try:
        return kinds[step.kind]
    except KeyError:
        raise CIError(
            kind="unknown_step_kind",
            step=step.name,
            message=f"unknown step kind {step.kind!r}",
            details={"known": ", ".join(sorted(kinds))},
        ) from None


def _skip_reason(ctx: RunContext, step: Step) -> Optional[str]:
    if not step.enabled:
        return "disabled"
    if step.only_if_exists and not (ctx.cwd / step.only_if_exists).exists():
        return f"{step.only_if_exists} not present"
    return None


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run(
    steps: Iterable[Step],
    env_overlay: Optional[Dict[str, str]] = None,
    *,
    cwd: str | Path = ".",
    executor: Optional[Executor] = None,
    console: Optional[Console] = None,
    nested_steps: Optional[List[Step]] = None,
    _depth: int = 0,
) -> RunResult:
    """
    Execute steps strictly in order.

    - disabled steps and absent optional collaborators are skipped
    - a non-zero exit from a tolerated step is recorded and the run goes on
    - any other non-zero exit stops the run; later steps never execute

    `nested_steps` is what a fixtures step re-runs inside each fixture;
    it defaults to `steps` itself.

    Returns:
      RunResult with status "success" or "failed" (plus the failing step's
      name, index and exit code).
    """
    steps = list(steps)
    console = console or get_console()

    with working_dir(cwd) as root:
        ctx = RunContext(
            cwd=root,
            overlay=dict(env_overlay or {}),
            executor=executor or subprocess_executor,
            console=console,
            steps=nested_steps if nested_steps is not None else steps,
            depth=_depth,
        )
        records: List[StepRecord] = []

        for index, step in enumerate(steps):
            reason = _skip_reason(ctx, step)
            if reason is not None:
                records.append(StepRecord(name=step.name, status="skipped"))
                console.print_step_skipped(step.name, reason)
                continue

            runner = _step_runner(step)
            console.print_step(step.name, step.display_cmd())
            started = time.monotonic()
            try:
                runner(ctx, step)
            except StepFailure as e:
                duration = time.monotonic() - started
                if step.tolerate_failure:
                    records.append(
                        StepRecord(step.name, "tolerated", e.exit_code, duration)
                    )
                    console.print_tolerated(step.name, e.exit_code)
                    continue

                records.append(StepRecord(step.name, "failed", e.exit_code, duration))
                console.print_failure(step.name, str(e), exit_code=e.exit_code, hint=e.hint)
                return RunResult(
                    status="failed",
                    records=records,
                    failed_step=step.name,
                    failed_index=index,
                    exit_code=e.exit_code,
                    cwd=str(root),
                )

            records.append(StepRecord(step.name, "ok", 0, time.monotonic() - started))

        return RunResult(status="success", records=records, cwd=str(root))


def run_pipeline(
    pipeline: Pipeline,
    env_overlay: Optional[Dict[str, str]] = None,
    **kwargs,
) -> RunResult:
    """Run a Pipeline; the caller's overlay wins over the pipeline's own env."""
    overlay = dict(pipeline.env)
    overlay.update(env_overlay or {})
    return run(pipeline.steps, overlay, **kwargs)


# ----------------------------------------------------------------------
# Pipeline loading (local file)
# ----------------------------------------------------------------------

def load_pipeline(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a python file path.

    The file must define one of:
      - pipeline() -> Pipeline | List[Step]
      - PIPELINE = Pipeline(...)
      - STEPS = [Step, ...]
    """
    pl_path = Path(path).expanduser().resolve()
    if not pl_path.exists():
        raise CIError(
            kind="pipeline_not_found",
            step=None,
            message=f"Pipeline file not found: {pl_path}",
        )
    if pl_path.suffix != ".py":
        raise CIError(
            kind="pipeline_invalid",
            step=None,
            message=f"Pipeline must be a .py file, got: {pl_path.name}",
        )

    module_name = f"seqci_pipeline_{pl_path.stem}"
    globals_dict = runpy.run_path(str(pl_path), run_name=module_name)

    loaded = None
    factory = globals_dict.get("pipeline")
    # `from seqci import pipeline` brings in the helper, not a definition
    if callable(factory) and factory is not dsl.pipeline:
        loaded = factory()
    elif "PIPELINE" in globals_dict:
        loaded = globals_dict["PIPELINE"]
    elif "STEPS" in globals_dict:
        loaded = globals_dict["STEPS"]

    if isinstance(loaded, list) and all(isinstance(s, Step) for s in loaded):
        loaded = Pipeline(name=pl_path.stem, steps=loaded)

    if not isinstance(loaded, Pipeline):
        raise CIError(
            kind="pipeline_invalid",
            step=None,
            message=(
                "Pipeline file must return/define a Pipeline or a List[Step]. "
                "Define pipeline() -> Pipeline, PIPELINE = Pipeline(...) or STEPS = [Step, ...]."
            ),
            details={"file": str(pl_path)},
        )

    return loaded


if __name__ == "__main__":
    from .settings import PIPELINE_FILE

    result = run_pipeline(load_pipeline(PIPELINE_FILE))
    raise SystemExit(result.exit_code)
