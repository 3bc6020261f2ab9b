# nix_ci.py
# Variant for machines where nix provides the toolchain: nothing is
# installed or updated. Run with `seqci run --pipeline nix_ci.py`.
from __future__ import annotations

from seqci.presets import rust_crate
from seqci.settings import FIXTURES_DIR


def pipeline():
    return rust_crate("nix-ci", update_toolchain=False, fixtures_dir=FIXTURES_DIR)
