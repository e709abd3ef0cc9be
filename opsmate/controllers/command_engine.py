"""
Command engine for single-shot requests.

Turns user input into a Translation, classifies its risk, gates execution
behind the confirmation policy, runs it and explains failures. Every attempt
ends in exactly one CommandResult variant.
"""

import os
import re
from typing import Awaitable, List, Optional, Protocol

from opsmate.models.risk import RiskLevel
from opsmate.models.tool import (
    Cancelled,
    CommandResult,
    ErrorExplained,
    ErrorExplanation,
    Executed,
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
from opsmate.services.error_explainer import ErrorExplainer
from opsmate.services.error_patterns import unknown_error_explanation
from opsmate.services.tool_registry import ToolRegistry
from opsmate.tools.base import ToolAdapter
from opsmate.utils.errors import AmbiguousIntent
from opsmate.utils.logger import setup_logger

logger = setup_logger(__name__)

_INPUT_REDIRECT = re.compile(r"<\s*([^\s<>|;&]+)")


class InferenceOracle(Protocol):
    def infer(self, prompt: str) -> Awaitable[Translation]:
        ...


class CommandExecutor(Protocol):
    def execute(self, command: str) -> Awaitable[ExecutionResult]:
        ...


def input_files(command: str) -> List[str]:
    """Files a raw command reads through input redirection ("< dump.sql")."""
    return _INPUT_REDIRECT.findall(command)


class CommandEngine:
    """Single-shot orchestration over the registry, oracle and executor."""

    def __init__(
        self,
        registry: ToolRegistry,
        oracle: InferenceOracle,
        executor: CommandExecutor,
        audit_sink: Optional[AuditSink] = None,
        explainer: Optional[ErrorExplainer] = None,
    ):
        self.registry = registry
        self.oracle = oracle
        self.executor = executor
        self.audit_sink = audit_sink or NullAuditSink()
        self.explainer = explainer or ErrorExplainer()

    async def process_input(self, user_input: str, context: ToolContext) -> Translation:
        """
        Turn user input into a Translation for the detected tool.

        Raises:
            AmbiguousIntent: If no adapter recognises the input.
            InferenceFailure: If the oracle fails.
            FileNotFoundError: If the command needs a file that does not exist.
        """
        match = self.registry.detect_tool(user_input)
        if match is None:
            raise AmbiguousIntent(user_input)
        tool = match.tool
        # "docker rm $(kubectl ...)" is a docker command
        runs = self.registry.command_tool(user_input)
        if runs is not None and runs.is_raw_command(user_input):
            tool = runs
        logger.info(f"Detected tool: {tool.name}")

        if tool.is_raw_command(user_input):
            command = user_input.strip()
            translation = Translation(
                command=command,
                confidence=100,
                reasoning="Direct command input",
                tool_name=tool.name,
                requires_files=input_files(command),
            )
        else:
            translation = await self.oracle.infer(tool.build_prompt(user_input, context))
            # File the command under the program it actually runs
            runs = self.registry.command_tool(translation.command)
            translation.tool_name = (runs or tool).name
            logger.info(
                f"Translated: '{user_input}' -> '{translation.command}' "
                f"(confidence: {translation.confidence}%)"
            )

        self._validate_required_files(translation.requires_files, context)
        return translation

    def classify_risk(
        self,
        translation: Translation,
        context: ToolContext,
        user_input: Optional[str] = None,
    ) -> RiskLevel:
        """
        Risk of a translation under its tool's policy, raised to the level of
        any other registered tool the command invokes.

        Raises:
            UnknownTool: If translation.tool_name is not registered.
        """
        tool = self.registry.get_tool(translation.tool_name)
        level = self.registry.classify_command(translation.command, tool, context)
        logger.info(f"Risk classification: {translation.command} -> {level}")
        self._audit(
            AuditEventType.RISK_CLASSIFIED,
            translation,
            level,
            context,
            user_input=user_input,
        )
        return level

    async def execute(
        self,
        translation: Translation,
        context: ToolContext,
        confirm: Optional[ConfirmCallback] = None,
        risk_level: Optional[RiskLevel] = None,
    ) -> CommandResult:
        """
        Run a translation if the confirmation policy allows it.

        Without a confirm callback anything above LOW is cancelled. A caller
        that already ran classify_risk passes its level as risk_level so the
        classification is not audited twice; it can raise the level but never
        lower it.
        """
        tool = self.registry.get_tool(translation.tool_name)
        if risk_level is None:
            level = self.classify_risk(translation, context)
        else:
            level = max(
                risk_level,
                self.registry.classify_command(translation.command, tool, context),
            )

        outcome = ConfirmationOutcome.NOT_REQUIRED
        if level.requires_confirmation():
            request = ConfirmationRequest(translation, level, context.is_production)
            if not await request_confirmation(confirm, request):
                logger.info(f"Cancelled by operator: {translation.command}")
                self._audit(
                    AuditEventType.COMMAND_CANCELLED,
                    translation,
                    level,
                    context,
                    confirmation=ConfirmationOutcome.DECLINED,
                )
                return Cancelled(translation=translation, risk_level=level)
            outcome = ConfirmationOutcome.CONFIRMED

        logger.info(
            f"Executing {tool.name} command in directory: {context.working_directory}"
        )
        execution = await self.executor.execute(translation.command)
        logger.info(
            f"Execution complete: exit_code={execution.exit_code}, "
            f"duration={execution.duration:.2f}s"
        )
        self._audit(
            AuditEventType.COMMAND_EXECUTED,
            translation,
            level,
            context,
            confirmation=outcome,
            exit_code=execution.exit_code,
        )

        if execution.success:
            return Executed(translation=translation, execution=execution, risk_level=level)

        explanation = self._explain_execution(tool, execution)
        return ErrorExplained(
            explanation=explanation, translation=translation, execution=execution
        )

    async def explain_error(
        self, error_text: str, context: Optional[ToolContext] = None
    ) -> ErrorExplanation:
        """Explain free-form error text. Always returns an explanation."""
        tool = self.guess_tool_from_error(error_text)
        if tool is not None:
            explanation = tool.explain_error(error_text)
            if explanation is not None:
                logger.info(f"Tool-specific error explanation: {tool.name}")
                return explanation
        return await self.explainer.explain(error_text, context)

    def guess_tool_from_error(self, error_text: str) -> Optional[ToolAdapter]:
        lower = error_text.lower()
        if "drush" in lower:
            return self.registry.find_tool("drush")
        if "kubectl" in lower or "kubernetes" in lower:
            return self.registry.find_tool("kubectl")
        if "docker" in lower:
            return self.registry.find_tool("docker")
        if "mysql" in lower or "error 1064" in lower or "error 1045" in lower:
            return self.registry.find_tool("mysql")
        if "nginx" in lower:
            return self.registry.find_tool("nginx")
        if "apache" in lower or "httpd" in lower or "ah00" in lower:
            return self.registry.find_tool("apache2")
        return None

    def _explain_execution(
        self, tool: ToolAdapter, execution: ExecutionResult
    ) -> ErrorExplanation:
        for text in (execution.stderr, execution.stdout):
            if text:
                explanation = tool.explain_error(text)
                if explanation is not None:
                    return explanation
        return unknown_error_explanation(execution.stderr or execution.stdout)

    def _validate_required_files(self, files: List[str], context: ToolContext) -> None:
        for path in files:
            full_path = (
                path
                if os.path.isabs(path)
                else os.path.join(context.working_directory, path)
            )
            if not os.path.exists(full_path):
                raise FileNotFoundError(f"Required file not found: {path}")

    def _audit(
        self,
        event: AuditEventType,
        translation: Translation,
        level: RiskLevel,
        context: ToolContext,
        confirmation: Optional[ConfirmationOutcome] = None,
        exit_code: Optional[int] = None,
        user_input: Optional[str] = None,
    ) -> None:
        self.audit_sink.record(
            AuditEvent(
                event=event,
                command=translation.command,
                risk_level=level,
                tool=translation.tool_name,
                confirmation=confirmation,
                exit_code=exit_code,
                environment=context.environment,
                user_input=user_input,
                confidence=translation.confidence,
            )
        )
