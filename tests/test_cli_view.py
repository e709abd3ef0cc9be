"""Tests for CLIView rendering of untrusted text."""

import io

import pytest
from rich.console import Console

from opsmate.models.agent import Step, StepType
from opsmate.models.risk import RiskLevel
from opsmate.models.tool import ErrorExplanation, Solution, Translation
from opsmate.views.cli_view import CLIView


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def view(output):
    return CLIView(Console(file=output, width=200, color_system=None))


class TestMarkupInText:
    def test_error_message(self, view, output):
        view.print_error("unexpected closing tag [/x] in input")
        assert "Error: unexpected closing tag [/x] in input" in output.getvalue()

    def test_translation(self, view, output):
        translation = Translation(
            command="grep '[/etc]' /var/log/syslog",
            reasoning="search for [bold]literal[/bold] brackets",
            tool_name="network",
        )
        view.print_translation(translation, RiskLevel.LOW)
        text = output.getvalue()
        assert "grep '[/etc]' /var/log/syslog" in text
        assert "[bold]literal[/bold]" in text

    def test_explanation(self, view, output):
        explanation = ErrorExplanation(
            error_type="Odd [/x] Error",
            reason="stderr said [red]boom[/red]",
            possible_causes=["a cause with [/x]"],
            solutions=[Solution("Inspect [/x]", "cat [/x].log", RiskLevel.LOW)],
        )
        view.print_explanation(explanation)
        text = output.getvalue()
        assert "Odd [/x] Error" in text
        assert "stderr said [red]boom[/red]" in text
        assert "a cause with [/x]" in text
        assert "cat [/x].log" in text

    def test_risk_and_step(self, view, output):
        view.print_risk("echo [/x]", "network", RiskLevel.MEDIUM, False)
        view.print_step(
            Step(1, StepType.ACTION, "echo [/x]", tool_used="network", risk_level=RiskLevel.LOW)
        )
        text = output.getvalue()
        assert "echo [/x] (network)" in text
        assert "Confirmation: yes/no" in text
