# git.py
# Small, focused wrapper around the Git CLI.
# All Git interactions go through here so the rest of the codebase
# never calls subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional


def _git(args: list[str], cwd: Optional[str | Path] = None, strip: bool = True) -> str:
    """
    Execute a git command and return its stdout.

    Args:
        args: List of git arguments (e.g. ["ls-files"])
        cwd: Optional working directory in which to run the git command.
        strip: Remove surrounding whitespace. Turn off for NUL-separated
            output, where leading or trailing blanks belong to a path.

    Raises:
        subprocess.CalledProcessError: git exited non-zero.
        FileNotFoundError: git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        text=True,
        encoding="utf-8",
        errors="surrogateescape",
        stderr=subprocess.DEVNULL,
    )
    return out.strip() if strip else out


def tracked_files(cwd: str | Path) -> List[str]:
    """
    Return files tracked by git under `cwd`, relative to `cwd`.

    Staged-but-uncommitted files count as tracked; untracked ones do not.
    Paths come back verbatim (`-z`), so non-ASCII names are not quoted.
    """
    out = _git(["ls-files", "-z"], cwd=cwd, strip=False)
    return [p for p in out.split("\0") if p]


def get_remote_url(remote: str = "origin", cwd: Optional[str | Path] = None) -> str:
    """Return the URL configured for a remote."""
    return _git(["remote", "get-url", remote], cwd=cwd)
