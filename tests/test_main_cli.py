"""Tests for the CLI entry points in opsmate/main.py."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from opsmate.main import app
from opsmate.models.tool import ExecutionResult, Translation
from opsmate.services.audit_service import AuditEventType
from opsmate.utils.errors import InferenceFailure

runner = CliRunner()

SOLVED = Translation(command="", reasoning="SOLUTION: web pods lack DATABASE_URL")


@pytest.fixture
def collaborators(make_oracle, executor, audit_sink):
    """Patch the model client, shell and audit sink used by main.py."""

    def install(*responses):
        oracle = make_oracle(*responses) if responses else make_oracle(SOLVED)
        patches = [
            patch("opsmate.main.OpenAIService", return_value=oracle),
            patch("opsmate.main.ShellExecutor", return_value=executor),
            patch("opsmate.main.create_audit_sink", return_value=audit_sink),
        ]
        for p in patches:
            p.start()
        installed.extend(patches)
        return oracle

    installed = []
    yield install
    for p in installed:
        p.stop()


class TestToolsCommand:
    def test_lists_tools(self):
        result = runner.invoke(app, ["tools"])
        assert result.exit_code == 0
        names = ("kubectl", "docker", "mysql", "drush", "nginx", "apache2", "network")
        for name in names:
            assert name in result.output


class TestDetectCommand:
    def test_explicit(self):
        result = runner.invoke(app, ["detect", "kubectl", "get", "pods"])
        assert result.exit_code == 0
        assert "kubectl" in result.output
        assert "1.00" in result.output

    def test_no_match(self):
        result = runner.invoke(app, ["detect", "clear", "cache"])
        assert result.exit_code == 1
        assert "No tool detected" in result.output


class TestRiskCommand:
    def test_detected_tool(self):
        result = runner.invoke(app, ["risk", "docker", "rm", "web"])
        assert result.exit_code == 0
        assert "Risk: HIGH" in result.output
        assert "Confirmation: yes/no" in result.output

    def test_production_requires_typed(self):
        result = runner.invoke(
            app, ["risk", "--production", "kubectl", "delete", "pod", "web"]
        )
        assert result.exit_code == 0
        assert "Confirmation: typed" in result.output

    def test_explicit_tool(self):
        result = runner.invoke(app, ["risk", "--tool", "mysql", "DROP", "TABLE", "users"])
        assert "Risk: CRITICAL" in result.output

    def test_unknown_tool(self):
        result = runner.invoke(app, ["risk", "--tool", "helm", "helm", "ls"])
        assert result.exit_code == 1
        assert "Unknown tool: helm" in result.output

    def test_ambiguous(self):
        result = runner.invoke(app, ["risk", "clear", "cache"])
        assert result.exit_code == 1
        assert "Cannot detect tool" in result.output


class TestExplainCommand:
    def test_known_error(self, collaborators):
        collaborators()
        result = runner.invoke(
            app, ["explain", "--offline", "Unable to find image 'foo:1' locally"]
        )
        assert result.exit_code == 0
        assert "Docker Image Not Found" in result.output


class TestRunCommand:
    def test_raw_low_risk_command(self, collaborators, executor):
        oracle = collaborators()
        result = runner.invoke(app, ["run", "docker", "ps"])
        assert result.exit_code == 0
        assert executor.commands == ["docker ps"]
        assert "exit 0" in result.output
        assert oracle.prompts == []

    def test_declined_confirmation(self, collaborators, executor):
        collaborators()
        result = runner.invoke(app, ["run", "docker", "rm", "web"], input="n\n")
        assert result.exit_code == 0
        assert "Cancelled HIGH command" in result.output
        assert executor.commands == []

    def test_yes_flag(self, collaborators, executor):
        collaborators()
        result = runner.invoke(app, ["run", "--yes", "docker", "rm", "web"])
        assert result.exit_code == 0
        assert executor.commands == ["docker rm web"]

    def test_risk_is_audited_once(self, collaborators, audit_sink):
        collaborators()
        runner.invoke(app, ["run", "--yes", "docker", "rm", "web"])
        events = [e.event for e in audit_sink.events]
        assert events == [AuditEventType.RISK_CLASSIFIED, AuditEventType.COMMAND_EXECUTED]

    def test_failed_command_exits_nonzero(self, collaborators, executor):
        collaborators()
        executor.results["docker ps"] = ExecutionResult(
            1, stderr="Cannot connect to the Docker daemon. Is the docker daemon running?"
        )
        result = runner.invoke(app, ["run", "docker", "ps"])
        assert result.exit_code == 1
        assert "Docker Daemon Not Running" in result.output

    def test_ambiguous_input(self, collaborators):
        collaborators()
        result = runner.invoke(app, ["run", "clear", "cache"])
        assert result.exit_code == 1
        assert "Cannot detect tool" in result.output


class TestDiagnoseCommand:
    def test_completed(self, collaborators, executor):
        collaborators(
            Translation(command="kubectl get pods", reasoning="check", tool_name="kubectl"),
            SOLVED,
        )
        result = runner.invoke(app, ["diagnose", "why", "is", "web", "down"])
        assert result.exit_code == 0
        assert "web pods lack DATABASE_URL" in result.output
        assert executor.commands == ["kubectl get pods"]

    def test_stopped(self, collaborators):
        collaborators(InferenceFailure("backend unreachable"))
        result = runner.invoke(app, ["diagnose", "why", "is", "web", "down"])
        assert result.exit_code == 1
        assert "Stopped: inference_error" in result.output


class TestServeCommand:
    @patch("uvicorn.run")
    def test_serve(self, mock_run):
        result = runner.invoke(app, ["serve", "--port", "9001"])
        assert result.exit_code == 0
        mock_run.assert_called_once_with("opsmate.server:app", host="127.0.0.1", port=9001)
