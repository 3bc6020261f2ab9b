# presets.py
from __future__ import annotations

from typing import Sequence

from .dsl import optional_script, pipeline
from .model import Pipeline
from .settings import MIRIFLAGS, env_flag
from .step_workflows import cargo
from .step_workflows.fixtures import fixtures_step
from .step_workflows.markers import forbid_marker, report_marker


def rust_crate(
    name: str = "ci",
    *,
    update_toolchain: bool = True,
    fixme_excludes: Sequence[str] = (),
    fixtures_dir: str = "examples",
) -> Pipeline:
    """
    Full CI for a Rust crate: refresh the toolchain, lint, test under
    careful and miri, check the nix build, run every example fixture, then
    scan for markers.

    SEQCI_SLOW_CHECKS=0 turns off the release careful run and everything
    miri; SEQCI_NIX_BUILD=0 turns off the nix build.
    """
    slow = env_flag("SEQCI_SLOW_CHECKS", True)
    return pipeline(
        name,
        # Update our workbench
        cargo.toolchain_update(enabled=update_toolchain),

        # Housekeeping
        cargo.fmt_check(),
        cargo.clippy(),

        # Non-property tests
        cargo.careful_tests("debug"),

        # Nix build status
        cargo.nix_build(enabled=env_flag("SEQCI_NIX_BUILD", True)),

        # Property tests
        cargo.property_tests(),

        # Extremely slow (but lovely) UB checks
        cargo.careful_tests("release", enabled=slow),
        cargo.miri_tests(enabled=slow),
        cargo.per_example(enabled=slow),

        # Run examples
        optional_script("Run example script", "./run-examples.sh"),
        fixtures_step(directory=fixtures_dir),

        forbid_marker("FIXME", exclude_files=fixme_excludes),
        report_marker("TODO"),
        env={"MIRIFLAGS": MIRIFLAGS},
    )
