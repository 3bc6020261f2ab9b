# step_workflows/cargo.py
from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from ..dsl import matrix, sh, tolerated
from ..model import Step


# ---------------------------------------------------------------------
# Step factories for the Rust toolchain
# ---------------------------------------------------------------------

def toolchain_update(*, enabled: bool = True) -> List[Step]:
    """Idempotent installs; each may already be satisfied, so failures are tolerated."""
    return [
        tolerated("Update rustup", "rustup update", enabled=enabled),
        tolerated("Install nightly", "rustup toolchain install nightly", enabled=enabled),
        tolerated("Add miri", "rustup component add miri --toolchain nightly", enabled=enabled),
        tolerated("Install cargo-careful", "cargo install cargo-careful", enabled=enabled),
    ]


def fmt_check() -> Step:
    return sh("Format check", "cargo fmt --check")


def clippy() -> List[Step]:
    """Two passes: reduced feature set, then everything."""
    return [
        sh("Clippy (no default features)", "cargo clippy --all-targets --no-default-features"),
        sh("Clippy (all features)", "cargo clippy --all-targets --all-features"),
    ]


def _profile_flag(profile: str) -> str:
    if profile not in ("debug", "release"):
        raise ValueError(f"profile must be 'debug' or 'release', got {profile!r}")
    return " -r" if profile == "release" else ""


def careful_tests(profile: str = "debug", *, enabled: bool = True) -> List[Step]:
    flag = _profile_flag(profile)
    return [
        sh(
            f"Careful tests ({profile})",
            f"cargo +nightly careful test{flag} --no-default-features",
            enabled=enabled,
        ),
        sh(
            f"Careful examples ({profile})",
            f"cargo +nightly careful test{flag} --no-default-features --examples",
            enabled=enabled,
        ),
    ]


def nix_build(*, enabled: bool = True) -> List[Step]:
    # nix only sees files git knows about
    return [
        sh("Stage working tree", "git add -A", enabled=enabled),
        sh("Nix build", "nix build", enabled=enabled),
    ]


def property_tests(*, enabled: bool = True) -> List[Step]:
    return [
        sh("Property tests", "cargo test -r --all-features", enabled=enabled),
        sh("Property examples", "cargo test -r --all-features --examples", enabled=enabled),
    ]


def miri_tests(profiles: Sequence[str] = ("debug", "release"), *, enabled: bool = True) -> List[Step]:
    """cargo miri over {profiles} x {tests, examples}, no default features."""
    def for_profile(profile: str) -> List[Step]:
        flag = _profile_flag(profile)
        return [
            sh(
                f"Miri tests ({profile})",
                f"cargo +nightly miri test{flag} --no-default-features",
                enabled=enabled,
            ),
            sh(
                f"Miri examples ({profile})",
                f"cargo +nightly miri test{flag} --no-default-features --examples",
                enabled=enabled,
            ),
        ]

    return matrix("profile", profiles).steps(for_profile)


# ---------------------------------------------------------------------
# Example discovery
# ---------------------------------------------------------------------

class TargetEnumerator(Protocol):
    def list_targets(self, cwd: Path) -> List[str]: ...


def parse_available_examples(text: str) -> List[str]:
    """
    Pull example names out of cargo's usage error:

        error: "--example" takes one argument.
        Available examples:
            stopwatch
            matched_parentheses

    Anything that does not look like that yields [].
    """
    lines = text.splitlines()
    try:
        start = next(i for i, line in enumerate(lines) if line.strip() == "Available examples:")
    except StopIteration:
        return []

    names: List[str] = []
    for line in lines[start + 1:]:
        if not line.strip() or not line[:1].isspace():
            break
        names.append(line.strip())
    return names


class CargoExampleEnumerator:
    """Lists `[[example]]` targets by asking cargo for one without a name."""

    def __init__(self, toolchain: Optional[str] = None):
        self.toolchain = toolchain

    def command(self) -> List[str]:
        cmd = ["cargo"]
        if self.toolchain:
            cmd.append(f"+{self.toolchain}")
        cmd.extend(["run", "--example"])
        return cmd

    def list_targets(self, cwd: Path) -> List[str]:
        try:
            proc = subprocess.run(
                self.command(),
                cwd=str(cwd),
                capture_output=True,
                text=True,
            )
        except (OSError, subprocess.SubprocessError):
            return []
        return parse_available_examples(proc.stderr + "\n" + proc.stdout)


def per_example(
    name: str = "Miri run examples",
    command: str = "cargo +nightly miri run --example {target}",
    *,
    enumerator: Optional[TargetEnumerator] = None,
    enabled: bool = True,
) -> Step:
    """Run `command` once per discovered example; `{target}` is substituted."""
    return Step(
        name=name,
        run=command,
        enabled=enabled,
        kind="per_target",
        data={"command": command, "enumerator": enumerator},
    )


# ---------------------------------------------------------------------
# Per-target step execution
# ---------------------------------------------------------------------

def run_step(ctx, step: Step) -> None:
    """Enumerate targets now and run the command for each, stopping at the first failure."""
    # Import here to avoid circular import
    from ..runner import StepFailure

    data = step.data or {}
    template = data.get("command") or step.run
    enumerator = data.get("enumerator") or CargoExampleEnumerator()
    cwd = ctx.cwd_for(step)

    targets = enumerator.list_targets(cwd)
    if not targets:
        ctx.console.print_info("no targets found")
        return

    env = ctx.env_for(step)
    for target in targets:
        cmd = template.format(target=target)
        ctx.console.print_step(f"{step.name} [{target}]", cmd)
        exit_code = ctx.executor(cmd, cwd, env)
        if exit_code != 0:
            raise StepFailure(step=step.name, cmd=cmd, exit_code=exit_code)
