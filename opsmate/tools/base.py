"""
Base class for tool adapters.

An adapter knows one CLI family: how to recognise intent for it, how risky a
command is, how to explain its failures, and how to ask the inference backend
for a translation.
"""

import re
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from opsmate.models.risk import RiskLevel
from opsmate.models.tool import ErrorExplanation, ToolContext
from opsmate.services.error_patterns import ErrorPatternMatcher
from opsmate.services.risk_policy import RiskPolicy

# Heuristic scores stay below an explicit invocation
HEURISTIC_CAP = 0.9
EXPLICIT_CONFIDENCE = 1.0

# Where a word runs as a program: line start, after a separator, an opening
# quote, "--" or a prefix command such as sudo or xargs
_COMMAND_POSITION = (
    r"(?:^|[;&|(`'\"]|\s--\s|\b(?:sudo|xargs|nohup|time|watch|env)(?:\s+-\S+)*)"
    r"\s*(?:[\w./-]*/)?"
)

_PROMPT_FOOTER = """
Output JSON format:
{{
  "command": "exact {tool} command",
  "confidence": 0-100,
  "reasoning": "explanation"
}}
"""


class ToolAdapter(ABC):
    """Interface every tool adapter implements."""

    #: Invocation tokens that make the input an explicit command for this tool
    invocation_tokens: Tuple[str, ...] = ()
    #: Keyword -> weight used by the heuristic scorer
    keywords: Dict[str, float] = {}
    #: Error signature families this adapter can explain
    error_families: Tuple[str, ...] = ()

    def __init__(self, policy: RiskPolicy, matcher: ErrorPatternMatcher):
        self.policy = policy
        self.matcher = matcher
        self._keyword_patterns = [
            (re.compile(r"\b" + re.escape(k) + r"(?:s|es)?\b"), w)
            for k, w in self.keywords.items()
        ]
        self._token_patterns = [
            re.compile(r"(?:^|[\s;&|(/])" + re.escape(t) + r"(?=$|[\s;&|)])")
            for t in self.invocation_tokens
        ]
        self._invocation_patterns = [
            re.compile(_COMMAND_POSITION + re.escape(t) + r"(?=$|[\s;&|)`'\"])")
            for t in self.invocation_tokens
        ]

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry key, e.g. "kubectl"."""

    @abstractmethod
    def prompt_hints(self, context: ToolContext) -> str:
        """Tool specific lines for the translation prompt."""

    def is_explicit(self, user_input: str) -> bool:
        """True when the input begins with or names an invocation token."""
        text = user_input.strip().lower()
        return any(p.search(text) for p in self._token_patterns)

    def is_raw_command(self, user_input: str) -> bool:
        """True when the input starts with an invocation token, i.e. is already a command."""
        parts = user_input.strip().split()
        if not parts:
            return False
        first = parts[0].lower()
        return any(first == t or first.endswith("/" + t) for t in self.invocation_tokens)

    def invokes(self, command: str) -> bool:
        """True when the command runs this tool anywhere, not just as its first word."""
        text = command.lower()
        return any(p.search(text) for p in self._invocation_patterns)

    def detect_intent(self, user_input: str) -> float:
        """
        Score how likely the input targets this tool.

        Returns:
            1.0 for an explicit invocation, otherwise the summed keyword
            weights capped below 1.0, or 0.0 when nothing matches.
        """
        if self.is_explicit(user_input):
            return EXPLICIT_CONFIDENCE
        text = user_input.lower()
        score = sum(w for p, w in self._keyword_patterns if p.search(text))
        return round(min(score, HEURISTIC_CAP), 4)

    def classify_risk(
        self, command: str, context: Optional[ToolContext] = None
    ) -> RiskLevel:
        return self.policy.classify(command, context)

    def explain_error(self, text: str) -> Optional[ErrorExplanation]:
        return self.matcher.match_pattern(text, tools=self.error_families)

    def build_prompt(self, user_input: str, context: ToolContext) -> str:
        """Prompt asking the inference backend for a single command."""
        return (
            f"Translate the following natural language to a {self.name} command.\n\n"
            f"User Input: {user_input}\n\n"
            f"Context:\n"
            f"- Environment: {context.environment}\n"
            f"- Working Directory: {context.working_directory}\n"
            f"{self.prompt_hints(context)}\n"
            + _PROMPT_FOOTER.format(tool=self.name)
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
