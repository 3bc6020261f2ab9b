import os
import sys
from pathlib import Path

import pytest

from conftest import RecordingExecutor
from seqci.dsl import optional_script, sh, tolerated
from seqci.model import Pipeline, Step
from seqci.runner import (
    CIError,
    StepFailure,
    load_pipeline,
    run,
    run_pipeline,
    subprocess_executor,
    working_dir,
)
from seqci.ui.console import Console


def _steps(n):
    return [sh(f"step-{i}", f"cmd-{i}") for i in range(n)]


@pytest.mark.unit
def test_all_zero_exits_is_success(tmp_path, recorder, console):
    result = run(_steps(4), cwd=tmp_path, executor=recorder, console=console)

    assert result.ok
    assert result.status == "success"
    assert str(result) == "success"
    assert recorder.commands == ["cmd-0", "cmd-1", "cmd-2", "cmd-3"]
    assert [r.status for r in result.records] == ["ok"] * 4


@pytest.mark.unit
@pytest.mark.parametrize("k", [0, 1, 3, 4])
def test_first_fatal_failure_halts_after_exactly_k(tmp_path, console, k):
    recorder = RecordingExecutor({f"cmd-{k}": 2})

    result = run(_steps(5), cwd=tmp_path, executor=recorder, console=console)

    assert result.status == "failed"
    assert result.failed_index == k
    assert result.failed_step == f"step-{k}"
    assert result.exit_code == 2
    assert str(result) == f"failed-at-step(step-{k})"
    assert recorder.commands == [f"cmd-{i}" for i in range(k + 1)]


@pytest.mark.unit
def test_tolerated_failure_does_not_halt(tmp_path, console):
    recorder = RecordingExecutor({"rustup update": 1})
    steps = [
        tolerated("Update rustup", "rustup update"),
        sh("Format check", "cargo fmt --check"),
    ]

    result = run(steps, cwd=tmp_path, executor=recorder, console=console)

    assert result.ok
    assert recorder.commands == ["rustup update", "cargo fmt --check"]
    assert result.records[0].status == "tolerated"
    assert result.records[0].exit_code == 1


@pytest.mark.unit
def test_disabled_step_is_skipped(tmp_path, recorder, console):
    steps = [sh("a", "cmd-a"), sh("b", "cmd-b", enabled=False), sh("c", "cmd-c")]

    result = run(steps, cwd=tmp_path, executor=recorder, console=console)

    assert result.ok
    assert recorder.commands == ["cmd-a", "cmd-c"]
    assert [r.status for r in result.records] == ["ok", "skipped", "ok"]
    assert result.executed() == ["a", "c"]


@pytest.mark.unit
def test_optional_script_runs_only_when_present(tmp_path, recorder, console):
    steps = [optional_script("Run example script", "./run-examples.sh")]

    absent = run(steps, cwd=tmp_path, executor=recorder, console=console)
    assert absent.ok
    assert absent.records[0].status == "skipped"
    assert recorder.calls == []

    (tmp_path / "run-examples.sh").write_text("#!/bin/sh\n", encoding="utf-8")
    present = run(steps, cwd=tmp_path, executor=recorder, console=console)
    assert present.records[0].status == "ok"
    assert recorder.commands == ["./run-examples.sh"]


@pytest.mark.unit
def test_skipped_steps_are_announced(tmp_path, recorder, capsys):
    steps = [
        sh("Nix build", "nix build", enabled=False),
        optional_script("Run example script", "./run-examples.sh"),
    ]

    run(steps, cwd=tmp_path, executor=recorder, console=Console())
    out = capsys.readouterr().out

    assert "STEP: Nix build (skipped: disabled)" in out
    assert "STEP: Run example script (skipped: ./run-examples.sh not present)" in out


@pytest.mark.unit
def test_env_overlay_reaches_commands(tmp_path, recorder, console, monkeypatch):
    monkeypatch.setenv("SEQCI_INHERITED", "yes")
    steps = [sh("a", "cmd-a", env={"STEP_ONLY": "1"}), sh("b", "cmd-b")]

    run(steps, {"MIRIFLAGS": "-Zmiri-backtrace=1"}, cwd=tmp_path, executor=recorder, console=console)

    env_a = recorder.calls[0][2]
    env_b = recorder.calls[1][2]
    assert env_a["MIRIFLAGS"] == "-Zmiri-backtrace=1"
    assert env_a["SEQCI_INHERITED"] == "yes"
    assert env_a["STEP_ONLY"] == "1"
    assert "STEP_ONLY" not in env_b


@pytest.mark.unit
def test_run_pipeline_caller_overlay_wins(tmp_path, recorder, console):
    pl = Pipeline(name="ci", steps=[sh("a", "cmd-a")], env={"MIRIFLAGS": "x", "KEEP": "1"})

    run_pipeline(pl, {"MIRIFLAGS": "y"}, cwd=tmp_path, executor=recorder, console=console)

    env = recorder.calls[0][2]
    assert env["MIRIFLAGS"] == "y"
    assert env["KEEP"] == "1"


@pytest.mark.unit
def test_step_cwd_is_relative_to_run_cwd(tmp_path, recorder, console):
    (tmp_path / "sub").mkdir()

    run([sh("a", "cmd-a", cwd="sub")], cwd=tmp_path, executor=recorder, console=console)

    assert recorder.cwds == [(tmp_path / "sub").resolve()]


@pytest.mark.unit
def test_missing_step_cwd_is_configuration_error(tmp_path, recorder, console):
    with pytest.raises(CIError) as exc:
        run([sh("a", "cmd-a", cwd="nope")], cwd=tmp_path, executor=recorder, console=console)
    assert exc.value.kind == "missing_cwd"


@pytest.mark.unit
def test_unknown_step_kind_is_configuration_error(tmp_path, recorder, console):
    with pytest.raises(CIError, match="unknown step kind"):
        run([Step(name="x", kind="docker")], cwd=tmp_path, executor=recorder, console=console)


@pytest.mark.unit
def test_same_steps_twice_give_same_status(tmp_path, console):
    recorder = RecordingExecutor({"cmd-2": 1})

    first = run(_steps(4), cwd=tmp_path, executor=recorder, console=console)
    second = run(_steps(4), cwd=tmp_path, executor=recorder, console=console)

    assert first.status == second.status == "failed"
    assert first.failed_index == second.failed_index == 2
    assert recorder.commands == ["cmd-0", "cmd-1", "cmd-2"] * 2


@pytest.mark.unit
def test_step_failure_hint_only_for_missing_program():
    missing = StepFailure(step="Nix build", cmd="nix build", exit_code=127)
    failed = StepFailure(step="Nix build", cmd="nix build", exit_code=1)

    assert "nixos.org" in missing.hint
    assert failed.hint is None
    assert "exit=127" in str(missing)


@pytest.mark.unit
def test_working_dir_does_not_touch_process_cwd(tmp_path):
    before = os.getcwd()
    with working_dir(tmp_path) as cwd:
        assert cwd == tmp_path.resolve()
        assert os.getcwd() == before
    assert os.getcwd() == before


@pytest.mark.unit
def test_working_dir_rejects_missing_directory(tmp_path):
    with pytest.raises(CIError):
        with working_dir(tmp_path / "missing"):
            pass


def test_subprocess_executor_reports_exit_codes(tmp_path):
    env = os.environ.copy()
    ok = subprocess_executor([sys.executable, "-c", "pass"], tmp_path, env)
    bad = subprocess_executor([sys.executable, "-c", "import sys; sys.exit(3)"], tmp_path, env)
    missing = subprocess_executor(["seqci-definitely-not-a-program"], tmp_path, env)

    assert ok == 0
    assert bad == 3
    assert missing == 127


def test_subprocess_executor_passes_env(tmp_path):
    env = os.environ.copy()
    env["SEQCI_EXIT_WITH"] = "7"
    code = subprocess_executor(
        [sys.executable, "-c", "import os, sys; sys.exit(int(os.environ['SEQCI_EXIT_WITH']))"],
        tmp_path,
        env,
    )
    assert code == 7


# ---------------------------------------------------------------------
# load_pipeline
# ---------------------------------------------------------------------

@pytest.mark.unit
def test_load_pipeline_from_factory(tmp_path):
    path = tmp_path / "my_pipeline.py"
    path.write_text(
        "from seqci import sh, pipeline as define\n"
        "def pipeline():\n"
        "    return define('ci', sh('a', 'cmd-a'), env={'K': 'V'})\n",
        encoding="utf-8",
    )

    pl = load_pipeline(path)

    assert pl.name == "ci"
    assert [s.name for s in pl.steps] == ["a"]
    assert pl.env == {"K": "V"}


@pytest.mark.unit
def test_load_pipeline_from_steps_list(tmp_path):
    path = tmp_path / "list_pipeline.py"
    path.write_text(
        "from seqci import sh\n"
        "STEPS = [sh('a', 'cmd-a'), sh('b', 'cmd-b')]\n",
        encoding="utf-8",
    )

    pl = load_pipeline(path)

    assert pl.name == "list_pipeline"
    assert [s.name for s in pl.steps] == ["a", "b"]


@pytest.mark.unit
def test_load_pipeline_ignores_imported_helper(tmp_path):
    path = tmp_path / "const_pipeline.py"
    path.write_text(
        "from seqci import sh, pipeline\n"
        "PIPELINE = pipeline('ci', sh('a', 'cmd-a'))\n",
        encoding="utf-8",
    )

    assert load_pipeline(path).name == "ci"


@pytest.mark.unit
def test_load_pipeline_rejects_bad_files(tmp_path):
    with pytest.raises(CIError, match="not found"):
        load_pipeline(tmp_path / "missing.py")

    txt = tmp_path / "pipeline.txt"
    txt.write_text("", encoding="utf-8")
    with pytest.raises(CIError, match=".py"):
        load_pipeline(txt)

    empty = tmp_path / "empty_pipeline.py"
    empty.write_text("X = 1\n", encoding="utf-8")
    with pytest.raises(CIError, match="Pipeline or a List"):
        load_pipeline(empty)


@pytest.mark.unit
def test_shipped_pipelines_load():
    root = Path(__file__).resolve().parents[1]

    full = load_pipeline(root / "seqci_pipeline.py")
    nix = load_pipeline(root / "nix_ci.py")

    assert full.env["MIRIFLAGS"]
    full_names = [s.name for s in full.steps]
    nix_by_name = {s.name: s for s in nix.steps}
    assert full_names[0] == "Update rustup"
    assert full_names[-2:] == ["Check for remaining FIXMEs", "Print remaining TODOs"]
    assert nix_by_name["Update rustup"].enabled is False

    full_fixme = next(s for s in full.steps if s.name == "Check for remaining FIXMEs")
    nix_fixme = nix_by_name["Check for remaining FIXMEs"]
    assert full_fixme.data["exclude_files"] == ["seqci_pipeline.py"]
    assert nix_fixme.data["exclude_files"] == []
