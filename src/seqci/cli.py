# cli.py
from __future__ import annotations

import subprocess
import sys
from dataclasses import replace
from pathlib import Path

import click

from seqci import settings
from seqci.git_facts.git import get_remote_url
from seqci.model import Pipeline, Step
from seqci.runner import CIError, load_pipeline, run_pipeline
from seqci.step_workflows.cargo import CargoExampleEnumerator
from seqci.step_workflows.markers import DEFAULT_EXCLUDE_DIRS, scan_markers
from seqci.ui.console import Console, get_console, set_console


PIPELINE_GLOB = "*_pipeline.py"


def pipeline_candidates(directory: Path = Path(".")) -> list[Path]:
    """Pipeline files `seqci run` would pick from in `directory`, sorted."""
    found = {p for p in directory.glob(PIPELINE_GLOB) if p.is_file()}
    default = directory / settings.PIPELINE_FILE
    if default.is_file():
        found.add(default)
    return sorted(found)


def resolve_pipeline(pipeline_arg: str | None, directory: Path = Path(".")) -> Path:
    """
    Pick the pipeline file to load.

    An explicit `--pipeline` wins and may omit ".py". Without one, exactly
    one candidate must exist in `directory`.

    Raises:
        CIError: nothing matched, or several candidates did
    """
    if pipeline_arg:
        for path in (Path(pipeline_arg), Path(f"{pipeline_arg}.py")):
            if path.is_file():
                return path
        raise CIError(
            kind="pipeline_not_found",
            step=None,
            message=f"no pipeline file at {pipeline_arg}",
        )

    candidates = pipeline_candidates(directory)
    if len(candidates) == 1:
        return candidates[0]
    if not candidates:
        raise CIError(
            kind="pipeline_not_found",
            step=None,
            message=f"neither {settings.PIPELINE_FILE} nor {PIPELINE_GLOB} found",
            details={"hint": "seqci run --pipeline my_pipeline.py"},
        )
    raise CIError(
        kind="pipeline_ambiguous",
        step=None,
        message="several pipeline files found, choose one with --pipeline",
        details={"candidates": ", ".join(str(c) for c in candidates)},
    )


def parse_env(pairs: tuple[str, ...]) -> dict[str, str]:
    overlay: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--env")
        overlay[key] = value
    return overlay


def _repo_name(cwd: Path) -> str:
    try:
        repo_url = get_remote_url("origin", cwd=cwd)
        return repo_url.rstrip("/").split("/")[-1].replace(".git", "")
    except (subprocess.CalledProcessError, FileNotFoundError):
        return cwd.resolve().name


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces)",
)
@click.pass_context
def cli(ctx, debug):
    """seqci: sequential, fail-fast CI runner."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


def _only_fixtures(steps: list[Step], fixtures_dir: str) -> list[Step]:
    picked = [s for s in steps if s.kind == "fixtures"]
    if not picked:
        raise CIError(
            kind="no_fixture_step",
            step=None,
            message="pipeline has no fixtures step",
        )
    data = dict(picked[0].data or {})
    data["directory"] = fixtures_dir
    return [replace(picked[0], data=data, enabled=True)]


def _run_loaded(
    pipeline_arg: str | None,
    cwd: str,
    env: tuple[str, ...],
    fixtures_dir: str | None = None,
) -> None:
    console = get_console()
    try:
        pipeline_path = resolve_pipeline(pipeline_arg)
        pl = load_pipeline(pipeline_path)
        overlay = parse_env(env)
        steps = pl.steps
        if fixtures_dir is not None:
            steps = _only_fixtures(pl.steps, fixtures_dir)

        console.print_run_started(
            repository=_repo_name(Path(cwd)),
            pipeline=pipeline_path.name,
            step_count=len(steps),
        )

        result = run_pipeline(
            Pipeline(name=pl.name, steps=steps, env=pl.env),
            overlay,
            cwd=cwd,
            nested_steps=pl.steps,
        )
        console.print_result(result)

        if not result.ok:
            sys.exit(result.exit_code or 1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except click.ClickException:
        raise
    except CIError as e:
        console.print_error("Configuration error", str(e))
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.option(
    "--pipeline",
    "pipeline_arg",
    default=None,
    help=f"Pipeline file path (defaults to {settings.PIPELINE_FILE} if present)",
)
@click.option("--cwd", default=".", show_default=True, help="Working tree to run against")
@click.option("--env", multiple=True, metavar="KEY=VALUE", help="Extra environment overlay (repeatable)")
def run(pipeline_arg, cwd, env):
    """Run a pipeline top to bottom, stopping at the first failing step."""
    _run_loaded(pipeline_arg, cwd, env)


@cli.command()
@click.option("--pipeline", "pipeline_arg", default=None, help="Pipeline to re-run inside each fixture")
@click.option("--dir", "fixtures_dir", default=settings.FIXTURES_DIR, show_default=True, help="Fixtures directory")
@click.option("--env", multiple=True, metavar="KEY=VALUE", help="Extra environment overlay (repeatable)")
def fixtures(pipeline_arg, fixtures_dir, env):
    """Run only the fixtures step: one nested pipeline run per sub-directory."""
    _run_loaded(pipeline_arg, ".", env, fixtures_dir=fixtures_dir)


@cli.command()
@click.option("--toolchain", default=None, help="Rust toolchain to ask (e.g. nightly)")
def examples(toolchain):
    """List the example targets cargo knows about."""
    console = get_console()
    names = CargoExampleEnumerator(toolchain).list_targets(Path("."))
    if not names:
        console.print_info("no examples found")
        return
    for name in names:
        console.print_info(name)


@cli.command()
@click.argument("marker")
@click.option("--forbid", is_flag=True, default=False, help="Exit 1 if the marker is found")
@click.option("--exclude-dir", multiple=True, help="Directory names to skip (default: target, .git)")
@click.option("--exclude", "exclude_files", multiple=True, help="File names to skip")
@click.option("--tracked-only", is_flag=True, default=False, help="Only scan files tracked by git")
def markers(marker, forbid, exclude_dir, exclude_files, tracked_only):
    """Print every whole-word occurrence of MARKER in the tree."""
    console = get_console()
    matches = scan_markers(
        ".",
        marker,
        exclude_dirs=exclude_dir or DEFAULT_EXCLUDE_DIRS,
        exclude_files=exclude_files,
        tracked_only=tracked_only,
    )
    for m in matches:
        console.print_match(str(m))
    if forbid and matches:
        sys.exit(1)


if __name__ == "__main__":
    cli()
