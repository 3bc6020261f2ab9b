# src/seqci/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from .model import Command, Pipeline, Step


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: Command,
    *,
    cwd: str | None = None,
    env: Optional[Dict[str, str]] = None,
    tolerate_failure: bool = False,
    enabled: bool = True,
) -> Step:
    """Create a shell step."""
    return Step(
        name=name,
        run=cmd,
        cwd=cwd,
        env=dict(env or {}),
        tolerate_failure=tolerate_failure,
        enabled=enabled,
    )


def tolerated(name: str, cmd: Command, **kwargs) -> Step:
    """A step whose non-zero exit is acceptable (`cmd || :`)."""
    return sh(name, cmd, tolerate_failure=True, **kwargs)


def optional_script(
    name: str,
    path: str,
    *args: str,
    enabled: bool = True,
) -> Step:
    """Run a user-supplied script only if it exists in the working directory."""
    return Step(
        name=name,
        run=[path, *args],
        only_if_exists=path,
        enabled=enabled,
    )


# ---------------------------------------------------------------------
# Pipeline helpers
# ---------------------------------------------------------------------

StepsLike = Union[Step, Sequence[Step]]


def _flatten(items: Iterable[StepsLike]) -> List[Step]:
    out: List[Step] = []
    for item in items:
        if isinstance(item, Step):
            out.append(item)
        else:
            out.extend(item)
    return out


def pipeline(
    name: str,
    *steps: StepsLike,  # allow: pipeline("ci", sh(...), [sh(...), sh(...)])
    env: Optional[Dict[str, str]] = None,
) -> Pipeline:
    steps_final = _flatten(steps)
    if not steps_final:
        raise ValueError(f"pipeline({name!r}) must have at least one step")

    names = [s.name for s in steps_final]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ValueError(f"Duplicate step names found: {dupes}")

    return Pipeline(name=name, steps=steps_final, env=dict(env or {}))


class PipelineBuilder:
    def __init__(self, name: str):
        self.name = name
        self._steps: list[Step] = []
        self._env: dict[str, str] = {}
        self._enabled: bool = True

    def when(self, enabled: bool):
        """Steps added after this call are enabled only if `enabled`."""
        self._enabled = enabled
        return self

    def step(self, name: str, run: Command, cwd: str | None = None):
        self._steps.append(sh(name, run, cwd=cwd, enabled=self._enabled))
        return self

    def tolerate(self, name: str, run: Command, cwd: str | None = None):
        self._steps.append(tolerated(name, run, cwd=cwd, enabled=self._enabled))
        return self

    def extend(self, *steps: StepsLike):
        for s in _flatten(steps):
            if not self._enabled and s.enabled:
                s = replace(s, enabled=False)
            self._steps.append(s)
        return self

    def with_env(self, **env):
        # force values to str for env compatibility
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def build(self) -> Pipeline:
        if not self._steps:
            raise ValueError(f"Pipeline '{self.name}' has no steps")
        return pipeline(self.name, self._steps, env=self._env)


def build(name: str) -> PipelineBuilder:
    """Convenience: build('ci').step(...).build()"""
    return PipelineBuilder(name)


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

class Matrix:
    """
    Minimal matrix expander.

    Example:
        matrix("profile", ["debug", "release"]).steps(
            lambda p: sh(f"miri ({p})", ...)
        )
    """
    def __init__(self, key: str, values: Iterable[Any]):
        self.key = key
        self.values = list(values)

    def steps(self, builder: Callable[[Any], StepsLike]) -> List[Step]:
        return _flatten(builder(v) for v in self.values)


def matrix(key: str, values: Iterable[Any]) -> Matrix:
    return Matrix(key, values)
