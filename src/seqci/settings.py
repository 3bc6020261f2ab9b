from __future__ import annotations
import os

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off", ""}


def env_flag(name: str, default: bool = False) -> bool:
    """Read a boolean feature toggle from the environment."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in TRUTHY:
        return True
    if value in FALSY:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


PIPELINE_FILE = os.environ.get("SEQCI_PIPELINE", "seqci_pipeline.py")
FIXTURES_DIR = os.environ.get("SEQCI_FIXTURES_DIR", "examples")
MIRIFLAGS = os.environ.get("SEQCI_MIRIFLAGS", "-Zmiri-backtrace=1")
