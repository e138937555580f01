from __future__ import annotations

import json
import textwrap

import pytest
from click.testing import CliRunner

from gateci.cli import cli

GREEN = """
from gateci.dsl import wf, job, sh, checkout

def workflow():
    return wf(
        job("tests", sh("Done", "exit 0"), needs=["build", "lint"]),
        job("build", checkout(), sh("Build", "true")),
        job("lint", sh("Lint", "{lint}")),
        job("nightly", sh("Nightly", "{nightly}"), continue_on_error=True, on=["pull_request"]),
    )
"""


def _write(path, lint="true", nightly="true"):
    path.write_text(textwrap.dedent(GREEN.format(lint=lint, nightly=nightly)))
    return path


@pytest.fixture
def in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GATECI_WORKFLOW", raising=False)
    monkeypatch.delenv("GATECI_WORKERS", raising=False)
    monkeypatch.delenv("GATECI_STEP_TIMEOUT", raising=False)
    return tmp_path


class TestRun:
    def test_green_pipeline(self, in_tmp):
        _write(in_tmp / "gateci_workflow.py")
        result = CliRunner().invoke(cli, ["run", "--workers", "2"])
        assert result.exit_code == 0, result.output
        assert "PIPELINE: SUCCESS" in result.output
        assert "tests: SUCCESS" in result.output

    def test_blocking_failure_exits_1(self, in_tmp):
        _write(in_tmp / "gateci_workflow.py", lint="exit 2")
        result = CliRunner().invoke(cli, ["run", "--trigger", "merge_group"])
        assert result.exit_code == 1
        assert "STEP FAILED: Lint (exit=2)" in result.output
        assert "tests: SKIPPED - upstream failed: lint" in result.output
        assert "PIPELINE: FAILURE" in result.output

    def test_tolerated_failure_exits_0(self, in_tmp):
        _write(in_tmp / "gateci_workflow.py", nightly="exit 1")
        result = CliRunner().invoke(cli, ["run", "--gate", "tests"])
        assert result.exit_code == 0, result.output
        assert "nightly: FAILURE (tolerated)" in result.output
        assert "Gate tests: success" in result.output

    def test_unknown_gate(self, in_tmp):
        _write(in_tmp / "gateci_workflow.py")
        result = CliRunner().invoke(cli, ["run", "--gate", "nope"])
        assert result.exit_code == 1

    def test_report(self, in_tmp):
        _write(in_tmp / "gateci_workflow.py", lint="false")
        result = CliRunner().invoke(cli, ["run", "--report", "report.json", "--gate", "tests"])
        assert result.exit_code == 1
        report = json.loads((in_tmp / "report.json").read_text())
        assert report["status"] == "failure"
        assert report["trigger"] == "pull_request"
        assert report["gate"] == "tests"
        assert report["blocking"] == ["tests", "lint"]
        statuses = {j["job"]: j["status"] for j in report["jobs"]}
        assert statuses == {"tests": "skipped", "build": "success", "lint": "failure", "nightly": "success"}

    def test_cycle_is_reported_before_running(self, in_tmp):
        (in_tmp / "gateci_workflow.py").write_text(textwrap.dedent("""
            from gateci.dsl import job, sh
            JOBS = [
                job("a", sh("a", "touch ran"), needs=["b"]),
                job("b", sh("b", "touch ran"), needs=["a"]),
            ]
        """))
        result = CliRunner().invoke(cli, ["run"])
        assert result.exit_code == 1
        assert "Dependency cycle" in result.output
        assert not (in_tmp / "ran").exists()

    def test_missing_workflow(self, in_tmp):
        result = CliRunner().invoke(cli, ["run"])
        assert result.exit_code == 1
        assert "No workflow file found" in result.output

    def test_bad_worker_setting_is_reported(self, in_tmp, monkeypatch):
        _write(in_tmp / "gateci_workflow.py")
        monkeypatch.setenv("GATECI_WORKERS", "abc")
        result = CliRunner().invoke(cli, ["run"])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
        assert "GATECI_WORKERS must be an integer" in result.output
        assert "PIPELINE" not in result.output

    def test_explicit_workflow_without_suffix(self, in_tmp):
        _write(in_tmp / "mine_workflow.py")
        result = CliRunner().invoke(cli, ["run", "--workflow", "mine_workflow"])
        assert result.exit_code == 0, result.output


class TestPlan:
    def test_text_plan(self, in_tmp):
        _write(in_tmp / "gateci_workflow.py")
        result = CliRunner().invoke(cli, ["plan"])
        assert result.exit_code == 0, result.output
        assert "Stage 1: build, lint, nightly" in result.output
        assert "tests (needs build, lint, gate)" in result.output
        assert "nightly (continue-on-error)" in result.output

    def test_json_plan_respects_trigger(self, in_tmp):
        _write(in_tmp / "gateci_workflow.py")
        result = CliRunner().invoke(cli, ["plan", "--trigger", "merge_group", "--json"])
        assert result.exit_code == 0, result.output
        plan = json.loads(result.output)
        assert plan["stages"] == [["build", "lint"], ["tests"]]
        assert plan["gates"] == ["tests"]
        assert "nightly" not in plan["jobs"]


class TestCheck:
    def test_valid(self, in_tmp):
        _write(in_tmp / "gateci_workflow.py")
        result = CliRunner().invoke(cli, ["check"])
        assert result.exit_code == 0
        assert "4 job(s), 2 stage(s), OK" in result.output

    def test_unknown_dependency(self, in_tmp):
        (in_tmp / "gateci_workflow.py").write_text(textwrap.dedent("""
            from gateci.dsl import job, sh
            JOBS = [job("tests", sh("Done", "exit 0"), needs=["clippy"])]
        """))
        result = CliRunner().invoke(cli, ["check"])
        assert result.exit_code == 1
        assert "missing job 'clippy'" in result.output

    def test_bad_workflow_contents(self, in_tmp):
        (in_tmp / "gateci_workflow.py").write_text("JOBS = ['not a job']\n")
        result = CliRunner().invoke(cli, ["check"])
        assert result.exit_code == 1
        assert "Failed to load workflow" in result.output
