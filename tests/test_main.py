"""Tests for the main.py CLI — orchestrator and settings are mocked."""

import json
from unittest.mock import patch

import main
from config.settings import Settings
from core.errors import ConfigError
from core.state import Stage


def _fake_run(state, files=None, seed_requirements=None, on_stage=None, **kwargs):
    state.reset_inputs(files, seed_requirements)
    state.results.summary = "# Todo"
    state.results.test_code = "test('a', () => {});"
    state.stage = Stage.DONE
    return state


def test_schemas_command(capsys):
    assert main.main(["schemas"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert set(data) == {"requirements", "test_plan"}


def test_no_command_prints_help(capsys):
    assert main.main([]) == 1


def test_run_missing_api_key(tmp_path, capsys):
    with patch("main.Settings.from_env", side_effect=ConfigError("ANTHROPIC_API_KEY is not set")):
        assert main.main(["run", str(tmp_path)]) == 2
    assert "ANTHROPIC_API_KEY" in capsys.readouterr().err


def test_run_writes_artifacts(tmp_path, capsys):
    project = tmp_path / "project"
    project.mkdir()
    (project / "app.js").write_text("console.log(1)", encoding="utf-8")
    out = tmp_path / "out"

    with patch("main.Settings.from_env", return_value=Settings(api_key="k")), \
         patch("main.Orchestrator.run_autopilot", side_effect=_fake_run):
        code = main.main(["run", str(project), "--framework", "jest", "--out", str(out)])

    assert code == 0
    assert (out / "summary.md").read_text(encoding="utf-8") == "# Todo"
    assert (out / "test-code.test.js").exists()


def test_run_reports_stage_error(tmp_path, capsys):
    project = tmp_path / "project"
    project.mkdir()
    (project / "app.js").write_text("x", encoding="utf-8")

    def failing_run(state, files=None, seed_requirements=None, on_stage=None, **kwargs):
        state.reset_inputs(files, seed_requirements)
        state.results.summary = "# Todo"
        state.error = "Failed at step GENERATING_PRD: Received invalid JSON from the API"
        return state

    with patch("main.Settings.from_env", return_value=Settings(api_key="k")), \
         patch("main.Orchestrator.run_autopilot", side_effect=failing_run):
        code = main.main(["run", str(project), "--out", str(tmp_path / "out")])

    assert code == 1
    assert "GENERATING_PRD" in capsys.readouterr().err
    assert (tmp_path / "out" / "summary.md").exists()


def test_run_missing_prd_file(tmp_path, capsys):
    project = tmp_path / "project"
    project.mkdir()
    (project / "app.js").write_text("x", encoding="utf-8")

    with patch("main.Settings.from_env", return_value=Settings(api_key="k")), \
         patch("main.Orchestrator.run_autopilot") as run:
        code = main.main(["run", str(project), "--prd", str(tmp_path / "missing.txt")])

    assert code == 2
    assert "Cannot read requirements file" in capsys.readouterr().err
    run.assert_not_called()
