"""
Autonomous diagnostic loop.

Runs bounded think-act-observe iterations over the same registry, risk
policies and confirmation gate as the command engine. The loop owns its
AgentState and always leaves it in a terminal status.
"""

import re
from typing import Callable, Optional

from opsmate.controllers.command_engine import CommandExecutor, InferenceOracle
from opsmate.models.agent import (
    STOP_EXECUTION_ERROR,
    STOP_INFERENCE_ERROR,
    STOP_MAX_ITERATIONS,
    STOP_TIMEOUT,
    AgentState,
    Step,
    StepType,
)
from opsmate.models.risk import RiskLevel
from opsmate.models.tool import (
    ErrorExplanation,
    ExecutionResult,
    ToolContext,
    Translation,
)
from opsmate.services.audit_service import (
    AuditEvent,
    AuditEventType,
    AuditSink,
    ConfirmationOutcome,
    NullAuditSink,
)
from opsmate.services.confirmation import (
    ConfirmCallback,
    ConfirmationRequest,
    request_confirmation,
)
from opsmate.services.error_patterns import unknown_error_explanation
from opsmate.services.tool_registry import ToolRegistry
from opsmate.tools.base import ToolAdapter
from opsmate.utils.errors import ExecutionError, InferenceFailure
from opsmate.utils.logger import setup_logger

logger = setup_logger(__name__)

_DONE_MARKER = re.compile(r"^\s*(?:SOLUTION:|DONE\b)", re.IGNORECASE)
_SOLUTION_TEXT = re.compile(r"SOLUTION:\s*(.*)", re.IGNORECASE | re.DOTALL)

# How much history and output the thought prompt carries
PROMPT_HISTORY_STEPS = 6
PROMPT_INFO_ITEMS = 5
PROMPT_PREVIEW_CHARS = 150
OBSERVATION_OUTPUT_CHARS = 2000

StepCallback = Callable[[Step], None]


class AgentLoop:
    """Drives one AgentState from RUNNING to a terminal status."""

    def __init__(
        self,
        task: str,
        registry: ToolRegistry,
        oracle: InferenceOracle,
        executor: CommandExecutor,
        context: Optional[ToolContext] = None,
        confirm: Optional[ConfirmCallback] = None,
        audit_sink: Optional[AuditSink] = None,
        max_iterations: int = 20,
        max_duration: float = 300.0,
        on_step: Optional[StepCallback] = None,
    ):
        self.state = AgentState(
            task=task, max_iterations=max_iterations, max_duration=max_duration
        )
        self.registry = registry
        self.oracle = oracle
        self.executor = executor
        self.context = context or ToolContext()
        self.confirm = confirm
        self.audit_sink = audit_sink or NullAuditSink()
        self.on_step = on_step

    async def step(self) -> bool:
        """
        Run one Thought -> Action -> Observation iteration.

        Returns:
            True if the loop should keep going.
        """
        if not self.state.should_continue():
            self._finish()
            return False

        # Thought
        try:
            translation = await self.oracle.infer(self.build_thought_prompt())
        except InferenceFailure as e:
            logger.error(f"Inference failed, stopping run: {e}")
            self.state.stop(STOP_INFERENCE_ERROR)
            return False

        self._add(
            StepType.THOUGHT,
            translation.reasoning or translation.command or "(no reasoning)",
        )

        if self.is_done(translation):
            root_cause = self.extract_root_cause(translation)
            logger.info(f"Diagnosis complete: {root_cause}")
            self.state.complete(root_cause)
            return False

        # Action
        command = translation.command.strip()
        tool = self.resolve_tool(translation)
        if tool is None:
            self._add(StepType.ACTION, command, success=False)
            self._observe(
                command,
                f"No registered tool handles this command: {command}",
                success=False,
            )
            return self._advance()

        level = self.registry.classify_command(command, tool, self.context)
        request = ConfirmationRequest(
            Translation(command=command, tool_name=tool.name),
            level,
            self.context.is_production,
        )
        confirmed = await request_confirmation(self.confirm, request)
        self._add(StepType.ACTION, command, tool_used=tool.name, risk_level=level)
        self._audit(command, tool.name, level, confirmed)

        if not confirmed:
            self._observe(
                command,
                f"Action not executed: {level} risk command was not confirmed",
                success=False,
                tool=tool.name,
                risk_level=level,
            )
            return self._advance()

        # Observation
        try:
            execution = await self.executor.execute(command)
        except ExecutionError as e:
            logger.error(f"Executor failed, stopping run: {e}")
            self._observe(
                command, f"Execution failed: {e}", success=False, tool=tool.name
            )
            self.state.stop(STOP_EXECUTION_ERROR)
            return False

        explanation = None if execution.success else self._explain(tool, execution)
        self._observe(
            command,
            self.format_observation(execution, explanation),
            success=execution.success,
            tool=tool.name,
            risk_level=level,
            execution=execution,
            explanation=explanation,
        )
        return self._advance()

    async def run_until_complete(self) -> AgentState:
        """Iterate until the state is terminal, then return it."""
        while await self.step():
            pass
        self._finish()
        return self.state

    def resolve_tool(self, translation: Translation) -> Optional[ToolAdapter]:
        """
        By the program the command runs, else the tool the oracle named, else
        by detection on the command. The oracle's label never overrides what
        the command actually invokes.
        """
        runs = self.registry.command_tool(translation.command)
        if runs is not None:
            return runs
        if translation.tool_name:
            tool = self.registry.find_tool(translation.tool_name)
            if tool is not None:
                return tool
        match = self.registry.detect_tool(translation.command)
        return match.tool if match else None

    def is_done(self, translation: Translation) -> bool:
        if not translation.command.strip():
            return True
        return bool(
            _DONE_MARKER.match(translation.command)
            or _DONE_MARKER.match(translation.reasoning)
        )

    def extract_root_cause(self, translation: Translation) -> str:
        for text in (translation.command, translation.reasoning):
            match = _SOLUTION_TEXT.search(text)
            if match and match.group(1).strip():
                return match.group(1).strip()
        return translation.reasoning.strip() or "Diagnosis complete"

    def build_thought_prompt(self) -> str:
        lines = [
            "You are an autonomous ops troubleshooting agent.",
            f"Task: {self.state.task}",
            f"Environment: {self.context.environment}",
            f"Available tools: {', '.join(self.registry.list_tools())}",
            "",
        ]
        if self.state.history:
            lines.append("What you've done so far:")
            for step in self.state.history[-PROMPT_HISTORY_STEPS:]:
                preview = step.content[:PROMPT_PREVIEW_CHARS]
                lines.append(
                    f"Step {step.step_number}: {step.step_type.name} - {preview}"
                )
            lines.append("")
        if self.state.collected_info:
            lines.append("Collected information:")
            for source, value in self.state.collected_info[-PROMPT_INFO_ITEMS:]:
                lines.append(f"$ {source}\n{value[:OBSERVATION_OUTPUT_CHARS // 4]}")
            lines.append("")
        lines.extend(
            [
                "Decide what to do next. Reply with one JSON object.",
                "To gather information:",
                '{"tool": "<tool name>", "command": "<read-only command>", '
                '"reasoning": "why", "confidence": 0-100}',
                "When you have identified the root cause:",
                '{"command": "", "reasoning": "SOLUTION: <root cause and fix>", '
                '"confidence": 0-100}',
            ]
        )
        return "\n".join(lines)

    def format_observation(
        self, execution: ExecutionResult, explanation: Optional[ErrorExplanation]
    ) -> str:
        output = execution.output or "(no output)"
        if len(output) > OBSERVATION_OUTPUT_CHARS:
            output = output[:OBSERVATION_OUTPUT_CHARS] + "...(truncated)"
        text = f"exit code {execution.exit_code}\n{output}"
        if explanation is not None:
            text += f"\n{explanation.error_type}: {explanation.reason}"
            if explanation.recommended.command:
                text += f"\nSuggested: {explanation.recommended.command}"
        return text

    def _explain(self, tool: ToolAdapter, execution: ExecutionResult) -> ErrorExplanation:
        for text in (execution.stderr, execution.stdout):
            if text:
                explanation = tool.explain_error(text)
                if explanation is not None:
                    return explanation
        return unknown_error_explanation(execution.stderr or execution.stdout)

    def _observe(
        self,
        command: str,
        observation: str,
        success: bool,
        tool: Optional[str] = None,
        risk_level: Optional[RiskLevel] = None,
        execution: Optional[ExecutionResult] = None,
        explanation: Optional[ErrorExplanation] = None,
    ) -> None:
        self._add(
            StepType.OBSERVATION,
            observation,
            tool_used=tool,
            success=success,
            risk_level=risk_level,
            execution=execution,
            explanation=explanation,
        )
        self.state.add_info(command, observation)

    def _add(self, step_type: StepType, content: str, **kwargs) -> None:
        step = Step(
            step_number=self.state.next_step_number(),
            step_type=step_type,
            content=content,
            **kwargs,
        )
        self.state.add_step(step)
        if self.on_step is not None:
            self.on_step(step)

    def _advance(self) -> bool:
        self.state.iteration += 1
        if self.state.should_continue():
            return True
        self._finish()
        return False

    def _finish(self) -> None:
        """Give a still-running state its stop reason."""
        if self.state.status.is_terminal:
            return
        if self.state.iteration >= self.state.max_iterations:
            self.state.stop(STOP_MAX_ITERATIONS)
        else:
            self.state.stop(STOP_TIMEOUT)
        logger.info(f"Agent stopped: {self.state.status}")

    def _audit(
        self, command: str, tool: str, level: RiskLevel, confirmed: bool
    ) -> None:
        if not level.requires_confirmation():
            outcome = ConfirmationOutcome.NOT_REQUIRED
        elif confirmed:
            outcome = ConfirmationOutcome.CONFIRMED
        else:
            outcome = ConfirmationOutcome.DECLINED
        self.audit_sink.record(
            AuditEvent(
                event=AuditEventType.AGENT_ACTION,
                command=command,
                risk_level=level,
                tool=tool,
                confirmation=outcome,
                environment=self.context.environment,
                user_input=self.state.task,
            )
        )
