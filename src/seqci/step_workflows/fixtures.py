# step_workflows/fixtures.py
from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from ..model import Command, RunResult, Step, StepRecord
from ..ui.console import Console, get_console

if TYPE_CHECKING:
    from ..runner import Executor


# ---------------------------------------------------------------------
# Fixture step helper
# ---------------------------------------------------------------------

def fixtures_step(
    name: str = "Run examples",
    *,
    directory: str = "examples",
    fixture_command: str | None = "cargo +nightly miri run",
    fail_fast: bool = True,
    enabled: bool = True,
) -> Step:
    """
    For every sub-directory of `directory`: run `fixture_command` there,
    then run the whole pipeline again from inside it.
    """
    return Step(
        name=name,
        run=f"for dir in {directory}/*/: {fixture_command or ''} && <pipeline>",
        enabled=enabled,
        kind="fixtures",
        data={
            "directory": directory,
            "fixture_command": fixture_command,
            "fail_fast": fail_fast,
        },
    )


# ---------------------------------------------------------------------
# Discovery + nested runs
# ---------------------------------------------------------------------

def discover_fixtures(root: str | Path) -> List[Path]:
    """
    Immediate sub-directories of `root`, hidden ones included, sorted by name.

    Plain files are ignored. A missing root means no fixtures.
    """
    root_p = Path(root)
    if not root_p.is_dir():
        return []
    return sorted((p for p in root_p.iterdir() if p.is_dir()), key=lambda p: p.name)


def _run_fixture_command(
    command: Command,
    fixture_cwd: Path,
    executor: Executor,
    env: Dict[str, str],
    console: Console,
) -> Optional[RunResult]:
    display = command if isinstance(command, str) else " ".join(command)
    name = f"Run fixture ({display})"
    console.print_step(name, display)
    exit_code = executor(command, fixture_cwd, env)
    if exit_code == 0:
        return None
    console.print_failure(name, f"fixture command exited {exit_code}", exit_code=exit_code)
    return RunResult(
        status="failed",
        records=[StepRecord(name, "failed", exit_code)],
        failed_step=name,
        failed_index=0,
        exit_code=exit_code,
        cwd=str(fixture_cwd),
    )


def discover_and_run_nested(
    root_dir: str | Path,
    runner: Callable[[Path], RunResult],
    *,
    fixture_command: Optional[Command] = None,
    executor: Optional[Executor] = None,
    env: Optional[Dict[str, str]] = None,
    fail_fast: bool = True,
    console: Optional[Console] = None,
) -> List[RunResult]:
    """
    For each fixture directory, one at a time: run `fixture_command` there,
    then `runner(fixture_dir)`.

    Fixtures are enumerated fresh on every call. A failing fixture command
    becomes that fixture's failed result and `runner` is not called for it.
    With fail_fast, iteration stops after the first failed fixture.
    """
    # Import here to avoid circular import
    from ..runner import subprocess_executor, working_dir

    console = console or get_console()
    executor = executor or subprocess_executor
    env = dict(os.environ) if env is None else env
    results: List[RunResult] = []

    for fixture in discover_fixtures(root_dir):
        console.print_nested_start(fixture.name)
        with working_dir(fixture) as fixture_cwd:
            result = None
            if fixture_command:
                result = _run_fixture_command(fixture_command, fixture_cwd, executor, env, console)
            if result is None:
                result = runner(fixture_cwd)
        results.append(result)
        if fail_fast and not result.ok:
            break

    return results


# ---------------------------------------------------------------------
# Fixture step execution
# ---------------------------------------------------------------------

def run_step(ctx, step: Step) -> None:
    """Run every fixture through the current pipeline."""
    # Import here to avoid circular import
    from ..runner import StepFailure

    data = step.data or {}
    root = ctx.cwd_for(step) / data.get("directory", "examples")

    results = discover_and_run_nested(
        root,
        ctx.run_nested,
        fixture_command=data.get("fixture_command"),
        executor=ctx.executor,
        env=ctx.env_for(step),
        fail_fast=bool(data.get("fail_fast", True)),
        console=ctx.console,
    )
    if not results:
        ctx.console.print_debug(f"no fixtures under {root}")

    failed = [r for r in results if not r.ok]
    if failed:
        first = failed[0]
        raise StepFailure(
            step=step.name,
            cmd=step.display_cmd(),
            exit_code=first.exit_code,
            message=f"fixture {first.cwd} failed at step '{first.failed_step}'",
        )
