# step_workflows/markers.py
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator, List, Sequence

from ..model import Step

DEFAULT_EXCLUDE_DIRS = ("target", ".git")


@dataclass(frozen=True)
class MarkerMatch:
    path: str
    line_no: int
    text: str

    def __str__(self) -> str:
        # grep -Rn layout
        return f"{self.path}:{self.line_no}:{self.text}"


# ---------------------------------------------------------------------
# Marker step helpers
# ---------------------------------------------------------------------

def _marker_step(
    name: str,
    marker: str,
    mode: str,
    *,
    cwd: str | None,
    exclude_dirs: Sequence[str],
    exclude_files: Sequence[str],
    tracked_only: bool,
    enabled: bool,
) -> Step:
    excludes = " ".join(f"--exclude-dir={d}" for d in exclude_dirs)
    excludes += "".join(f" --exclude={f}" for f in exclude_files)
    return Step(
        name=name,
        run=f"scan -Rnw . {excludes} -e {marker}",
        cwd=cwd,
        enabled=enabled,
        kind="marker",
        data={
            "marker": marker,
            "mode": mode,
            "exclude_dirs": list(exclude_dirs),
            "exclude_files": list(exclude_files),
            "tracked_only": tracked_only,
        },
    )


def forbid_marker(
    marker: str = "FIXME",
    *,
    name: str | None = None,
    cwd: str | None = None,
    exclude_dirs: Sequence[str] = DEFAULT_EXCLUDE_DIRS,
    exclude_files: Sequence[str] = (),
    tracked_only: bool = False,
    enabled: bool = True,
) -> Step:
    """A gate that fails the run (exit 1) if `marker` appears anywhere."""
    return _marker_step(
        name or f"Check for remaining {marker}s",
        marker,
        "forbid",
        cwd=cwd,
        exclude_dirs=exclude_dirs,
        exclude_files=exclude_files,
        tracked_only=tracked_only,
        enabled=enabled,
    )


def report_marker(
    marker: str = "TODO",
    *,
    name: str | None = None,
    cwd: str | None = None,
    exclude_dirs: Sequence[str] = DEFAULT_EXCLUDE_DIRS,
    exclude_files: Sequence[str] = (),
    tracked_only: bool = False,
    enabled: bool = True,
) -> Step:
    """Print every occurrence of `marker`; never affects the run status."""
    return _marker_step(
        name or f"Print remaining {marker}s",
        marker,
        "report",
        cwd=cwd,
        exclude_dirs=exclude_dirs,
        exclude_files=exclude_files,
        tracked_only=tracked_only,
        enabled=enabled,
    )


# ---------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------

def marker_pattern(marker: str) -> re.Pattern[str]:
    """Whole-word match, same word constituents as `grep -w`."""
    return re.compile(rf"(?<!\w){re.escape(marker)}(?!\w)")


def _walk(root: Path, exclude_dirs: Iterable[str], exclude_files: Iterable[str]) -> Iterator[Path]:
    skip_dirs = set(exclude_dirs)
    skip_files = set(exclude_files)
    for dirpath, dirnames, filenames in os.walk(root):
        # prune in place; sorted so output order is stable
        dirnames[:] = sorted(d for d in dirnames if d not in skip_dirs)
        for filename in sorted(filenames):
            if filename in skip_files:
                continue
            yield Path(dirpath) / filename


def _tracked(root: Path, exclude_dirs: Iterable[str], exclude_files: Iterable[str]) -> Iterator[Path]:
    from ..git_facts.git import tracked_files

    skip_dirs = set(exclude_dirs)
    skip_files = set(exclude_files)
    for rel in sorted(tracked_files(root)):
        parts = PurePosixPath(rel).parts
        if any(p in skip_dirs for p in parts[:-1]) or parts[-1] in skip_files:
            continue
        yield root / rel


def scan_markers(
    root: str | Path,
    marker: str,
    *,
    exclude_dirs: Sequence[str] = DEFAULT_EXCLUDE_DIRS,
    exclude_files: Sequence[str] = (),
    tracked_only: bool = False,
) -> List[MarkerMatch]:
    """
    Find every line under `root` containing `marker` as a whole word.

    Paths in the result are relative to `root` and prefixed with "./".
    """
    root_p = Path(root).resolve()
    pattern = marker_pattern(marker)
    files = (
        _tracked(root_p, exclude_dirs, exclude_files)
        if tracked_only
        else _walk(root_p, exclude_dirs, exclude_files)
    )

    matches: List[MarkerMatch] = []
    for path in files:
        if not path.is_file():
            continue
        rel = "./" + path.relative_to(root_p).as_posix()
        text = path.read_bytes().decode("utf-8", errors="replace")
        # "\n" only: str.splitlines and text-mode reads also break on \r, \x0c, \x85
        for line_no, line in enumerate(text.split("\n"), start=1):
            if pattern.search(line):
                matches.append(MarkerMatch(rel, line_no, line.removesuffix("\r")))
    return matches


# ---------------------------------------------------------------------
# Marker step execution
# ---------------------------------------------------------------------

def run_step(ctx, step: Step) -> None:
    """Run a marker scan step."""
    # Import here to avoid circular import
    from ..runner import CIError, StepFailure

    data = step.data or {}
    marker = data.get("marker")
    mode = data.get("mode")
    if not marker or mode not in ("forbid", "report"):
        raise CIError(
            kind="marker_invalid",
            step=step.name,
            message="marker steps need data.marker and data.mode in {forbid, report}",
        )

    matches = scan_markers(
        ctx.cwd_for(step),
        marker,
        exclude_dirs=data.get("exclude_dirs", DEFAULT_EXCLUDE_DIRS),
        exclude_files=data.get("exclude_files", ()),
        tracked_only=bool(data.get("tracked_only", False)),
    )
    for m in matches:
        ctx.console.print_match(str(m))

    if mode == "forbid" and matches:
        raise StepFailure(
            step=step.name,
            cmd=step.display_cmd(),
            exit_code=1,
            message=f"found {len(matches)} occurrence(s) of {marker}",
        )
    if mode == "report":
        ctx.console.print_info(f"{len(matches)} occurrence(s) of {marker}")
