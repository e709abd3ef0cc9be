"""
Error explanation with a fast and a slow path.

Known signatures are answered by the pattern matcher. Anything else may be
sent to the inference backend, and when that is unavailable or its reply is
unusable the generic explanation is returned. explain() always produces an
ErrorExplanation.
"""

from typing import Awaitable, Optional, Protocol

from opsmate.models.tool import ErrorExplanation, ToolContext
from opsmate.services.error_patterns import (
    ErrorPatternMatcher,
    unknown_error_explanation,
)
from opsmate.services.response_parser import ResponseParser
from opsmate.utils.errors import InferenceFailure
from opsmate.utils.logger import setup_logger

logger = setup_logger(__name__)

# Errors longer than this are truncated before being sent to the model
MAX_PROMPT_ERROR_CHARS = 1000


class TextCompleter(Protocol):
    def complete(self, prompt: str) -> Awaitable[str]:
        ...


def build_explanation_prompt(error_text: str, context: Optional[ToolContext] = None) -> str:
    if len(error_text) > MAX_PROMPT_ERROR_CHARS:
        error_text = error_text[:MAX_PROMPT_ERROR_CHARS] + "...(truncated)"
    working_directory = context.working_directory if context else "."
    environment = context.environment if context else "unknown"
    return (
        "You are an expert DevOps engineer. Explain the following error and "
        "provide solutions.\n\n"
        f"Error Message:\n```\n{error_text}\n```\n\n"
        f"Context:\n- Working Directory: {working_directory}\n"
        f"- Environment: {environment}\n\n"
        "Provide your response in JSON format:\n"
        "{\n"
        '  "error_type": "Brief error classification",\n'
        '  "reason": "Human-readable explanation",\n'
        '  "possible_causes": ["cause 1", "cause 2"],\n'
        '  "solutions": [\n'
        '    {"description": "what to do", "command": "exact command or null", '
        '"risk_level": "low|medium|high"}\n'
        "  ],\n"
        '  "recommended_solution": 0\n'
        "}\n"
    )


class ErrorExplainer:
    """Pattern matcher first, inference backend second, generic fallback last."""

    def __init__(
        self,
        matcher: Optional[ErrorPatternMatcher] = None,
        llm: Optional[TextCompleter] = None,
        parser: Optional[ResponseParser] = None,
    ):
        self.matcher = matcher or ErrorPatternMatcher()
        self.llm = llm
        self.parser = parser or ResponseParser()

    async def explain(
        self, error_text: str, context: Optional[ToolContext] = None
    ) -> ErrorExplanation:
        explanation = self.matcher.match_pattern(error_text)
        if explanation is not None:
            logger.info("Pattern match found for error")
            return explanation

        if self.llm is not None:
            logger.info("No pattern match, asking the model for an explanation")
            try:
                reply = await self.llm.complete(
                    build_explanation_prompt(error_text, context)
                )
            except InferenceFailure as e:
                logger.warning(f"Model explanation unavailable: {e}")
            else:
                explanation = self.parser.parse_explanation(reply)
                if explanation is not None:
                    return explanation
                logger.warning("Model explanation could not be parsed")

        return unknown_error_explanation(error_text)
