"""Tests for the shared data models."""

from opsmate.models.risk import RiskLevel
from opsmate.models.tool import (
    Cancelled,
    ErrorExplained,
    ExecutionResult,
    ToolContext,
    Translation,
)
from opsmate.services.error_patterns import unknown_error_explanation


class TestTranslation:
    def test_confidence_clamped(self):
        assert Translation(command="x", confidence=140).confidence == 100
        assert Translation(command="x", confidence=-3).confidence == 0

    def test_to_dict(self):
        data = Translation(command="docker ps", confidence=90, tool_name="docker").to_dict()
        assert data == {
            "command": "docker ps",
            "confidence": 90,
            "reasoning": "",
            "tool_name": "docker",
            "requires_files": [],
        }


class TestToolContext:
    def test_defaults(self):
        context = ToolContext()
        assert context.is_production is False
        assert context.environment == "unknown"

    def test_environment_from_name(self):
        assert ToolContext.environment_from_name("gke-prod-eu") == "production"
        assert ToolContext.environment_from_name("staging-1") == "staging"
        assert ToolContext.environment_from_name("minikube-dev") == "development"
        assert ToolContext.environment_from_name("minikube") == "unknown"

    def test_from_context_name(self):
        context = ToolContext.from_context_name("prod-us", working_directory="/srv")
        assert context.is_production is True
        assert context.kube_context == "prod-us"
        assert context.working_directory == "/srv"


class TestExecutionResult:
    def test_output_prefers_stdout(self):
        assert ExecutionResult(0, stdout="out", stderr="err").output == "out"
        assert ExecutionResult(1, stderr="err").output == "err"


class TestCommandResult:
    def test_cancelled_to_dict(self):
        result = Cancelled(Translation(command="docker rm web"), RiskLevel.HIGH)
        assert result.to_dict()["result"] == "cancelled"
        assert result.to_dict()["risk_level"] == "HIGH"

    def test_error_explained_keeps_raw_result(self):
        execution = ExecutionResult(1, stderr="boom")
        result = ErrorExplained(
            unknown_error_explanation("boom"), Translation(command="x"), execution
        )
        data = result.to_dict()
        assert data["execution"]["stderr"] == "boom"
        assert data["explanation"]["error_type"] == "Unknown Error"
