from typing import List, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from opsmate.models.agent import AgentPhase, AgentState, Step, StepType
from opsmate.models.risk import RiskLevel
from opsmate.models.tool import (
    Cancelled,
    CommandResult,
    ErrorExplained,
    ErrorExplanation,
    Executed,
    Translation,
)
from opsmate.services.confirmation import ConfirmationRequest
from opsmate.services.tool_registry import ToolMatch

RISK_STYLES = {
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
    RiskLevel.CRITICAL: "bold white on red",
}

STEP_ICONS = {
    StepType.THOUGHT: ("💭", "cyan"),
    StepType.ACTION: ("⚡", "yellow"),
    StepType.OBSERVATION: ("👁", "white"),
}


class CLIView:
    """Rich rendering for the opsmate command line."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def risk_label(self, level: RiskLevel) -> str:
        style = RISK_STYLES[level]
        return f"[{style}]{level}[/{style}]"

    def print_error(self, message: str) -> None:
        self.console.print(f"[red]Error: {escape(message)}[/red]")

    def print_tools(self, names: List[str]) -> None:
        self.console.print("[bold cyan]Registered tools:[/bold cyan]")
        for name in names:
            self.console.print(f" - {name}")

    def print_detection(self, match: Optional[ToolMatch]) -> None:
        if match is None:
            self.console.print("[yellow]No tool detected.[/yellow]")
            return
        self.console.print(
            f"Tool: [bold]{match.name}[/bold] (confidence {match.confidence:.2f})"
        )

    def print_risk(self, command: str, tool: str, level: RiskLevel, is_production: bool) -> None:
        self.console.print(f"[bold]{escape(command)}[/bold] ({escape(tool)})")
        self.console.print(f"Risk: {self.risk_label(level)}")
        if level.requires_typed_confirmation(is_production):
            self.console.print("Confirmation: typed")
        elif level.requires_confirmation():
            self.console.print("Confirmation: yes/no")
        else:
            self.console.print("Confirmation: none")

    def print_translation(self, translation: Translation, level: RiskLevel) -> None:
        body = (
            f"[bold]{escape(translation.command)}[/bold]\n"
            f"[dim]{escape(translation.reasoning)}[/dim]\n"
            f"Tool: {escape(translation.tool_name)} · Confidence: {translation.confidence}% · "
            f"Risk: {self.risk_label(level)}"
        )
        self.console.print(Panel(body, box=box.ROUNDED, padding=(0, 1)))

    def print_explanation(self, explanation: ErrorExplanation) -> None:
        self.console.print(f"[bold red]{escape(explanation.error_type)}[/bold red]")
        self.console.print(explanation.reason, markup=False)
        if explanation.possible_causes:
            self.console.print("\n[bold]Possible causes:[/bold]")
            for cause in explanation.possible_causes:
                self.console.print(f" - {escape(cause)}")

        table = Table(title="Solutions", box=box.SIMPLE)
        table.add_column("#", justify="right")
        table.add_column("Description")
        table.add_column("Command", style="cyan")
        table.add_column("Risk")
        for i, solution in enumerate(explanation.solutions):
            marker = "★" if i == explanation.recommended_solution else str(i + 1)
            table.add_row(
                marker,
                escape(solution.description),
                escape(solution.command or "-"),
                self.risk_label(solution.risk_level),
            )
        self.console.print(table)

        for link in explanation.documentation_links:
            self.console.print(f"[dim]Docs: {escape(link)}[/dim]")

    def print_result(self, result: CommandResult) -> None:
        if isinstance(result, Cancelled):
            self.console.print(
                f"[yellow]Cancelled {result.risk_level} command.[/yellow]"
            )
        elif isinstance(result, Executed):
            if result.execution.stdout:
                self.console.print(result.execution.stdout, markup=False)
            self.console.print(
                f"[green]✓ exit 0 in {result.execution.duration:.2f}s[/green]"
            )
        elif isinstance(result, ErrorExplained):
            if result.execution is not None:
                self.console.print(
                    f"[red]✗ exit {result.execution.exit_code}[/red]"
                )
                if result.execution.stderr:
                    self.console.print(result.execution.stderr, markup=False)
            self.print_explanation(result.explanation)

    def print_step(self, step: Step) -> None:
        icon, style = STEP_ICONS[step.step_type]
        header = f"{icon} [{style}]{step.step_type.name.title()} {step.step_number}[/{style}]"
        if step.tool_used:
            header += f" [dim]({escape(step.tool_used)})[/dim]"
        if step.risk_level is not None and step.step_type == StepType.ACTION:
            header += f" {self.risk_label(step.risk_level)}"
        if step.success is False:
            header += " [red]failed[/red]"
        self.console.print(header)
        self.console.print(step.content, markup=False)

    def print_agent_summary(self, state: AgentState) -> None:
        if state.status.phase == AgentPhase.COMPLETED:
            self.console.print(
                Panel(
                    escape(state.root_cause or ""),
                    title="Root cause",
                    style="green",
                    box=box.ROUNDED,
                )
            )
        else:
            self.console.print(f"[yellow]Stopped: {escape(str(state.status.reason))}[/yellow]")
        actions = len([s for s in state.history if s.step_type == StepType.ACTION])
        self.console.print(
            f"[dim]{state.iteration} iteration(s), {actions} action(s), "
            f"{state.elapsed:.1f}s[/dim]"
        )

    def confirm(self, request: ConfirmationRequest) -> bool:
        """Interactive confirmation; typed for the most dangerous commands."""
        command = request.translation.command
        self.console.print(
            f"{self.risk_label(request.risk_level)} [bold]{escape(command)}[/bold]"
        )
        if request.typed:
            answer = Prompt.ask(
                f"Type [bold]{escape(request.phrase)}[/bold] to confirm",
                console=self.console,
                default="",
                show_default=False,
            )
            return request.accepts(answer)
        return Confirm.ask("Execute?", console=self.console, default=False)
