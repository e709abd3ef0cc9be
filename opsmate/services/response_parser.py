"""
Response parser service for turning model output into structured results.

Handles JSON extraction from text, including edge cases like markdown
fences, unescaped newlines and Python dict literals produced by local
models, plus the plain-text ACTION:/SOLUTION: reply format.
"""

import ast
import json
import re
from typing import Any, Dict, Generator, List, Optional

from opsmate.models.risk import RiskLevel
from opsmate.models.tool import ErrorExplanation, Solution, Translation
from opsmate.utils.logger import setup_logger

logger = setup_logger(__name__)

_ACTION_LINE = re.compile(r"^\s*ACTION:\s*(\S+)\s+(.+?)\s*$", re.MULTILINE)
_SOLUTION_MARK = re.compile(r"SOLUTION:", re.IGNORECASE)


class ParseError(ValueError):
    """Model output did not contain a usable result."""


class ResponseParser:
    """Parses model responses into Translation and ErrorExplanation objects."""

    def extract_json_objects(self, text: str) -> List[Dict[str, Any]]:
        """
        Extract dict objects from response text.

        Handles:
        - Single JSON objects, or arrays of them
        - Mixed text and JSON, including ```json fences
        - Python dict literals (single quotes)
        - JSON with unescaped newlines in strings

        Args:
            text: Raw model response text.

        Returns:
            List of extracted dictionaries, in order of appearance.
        """
        text = self.clean_response_text(text)
        results: List[Dict[str, Any]] = []

        for candidate in self._find_json_objects(text):
            obj = self._load(candidate)
            if isinstance(obj, list):
                results.extend(o for o in obj if isinstance(o, dict))
            elif isinstance(obj, dict):
                results.append(obj)

        return results

    def parse_translation(self, text: str, tool_name: str = "") -> Translation:
        """
        Build a Translation from a model reply.

        Accepts a JSON object with command/confidence/reasoning (and optionally
        tool), or the plain-text form "ACTION: <tool> <command>" /
        "SOLUTION: <root cause>". A SOLUTION reply yields an empty command.

        Raises:
            ParseError: If the reply holds neither form.
        """
        for obj in self.extract_json_objects(text):
            if not {"command", "cmd", "done"} & obj.keys():
                continue
            command = obj.get("command", obj.get("cmd")) or ""
            if obj.get("done") is True:
                command = ""
            return Translation(
                command=str(command).strip(),
                confidence=self._confidence(obj.get("confidence", 0)),
                reasoning=str(obj.get("reasoning") or obj.get("thought") or ""),
                tool_name=str(obj.get("tool") or obj.get("tool_name") or tool_name),
                requires_files=self._files(obj.get("requires_files")),
            )

        cleaned = self.clean_response_text(text)
        action = _ACTION_LINE.search(cleaned)
        if action:
            return Translation(
                command=action.group(2).strip("`"),
                confidence=50,
                reasoning=cleaned,
                tool_name=action.group(1).strip("[]"),
            )
        if _SOLUTION_MARK.search(cleaned):
            return Translation(command="", confidence=100, reasoning=cleaned)

        logger.warning(f"Unparseable model reply: {cleaned[:200]}")
        raise ParseError("No command found in model response")

    def parse_explanation(self, text: str) -> Optional[ErrorExplanation]:
        """Build an ErrorExplanation from a JSON reply, or None if it has none."""
        for obj in self.extract_json_objects(text):
            if "error_type" not in obj or not obj.get("solutions"):
                continue
            solutions = []
            for raw in obj["solutions"]:
                if isinstance(raw, str):
                    solutions.append(Solution(description=raw))
                elif isinstance(raw, dict) and raw.get("description"):
                    solutions.append(
                        Solution(
                            description=str(raw["description"]),
                            command=raw.get("command") or None,
                            risk_level=self._risk(raw.get("risk_level")),
                        )
                    )
            if not solutions:
                continue
            recommended = obj.get("recommended_solution", 0)
            if not isinstance(recommended, int) or not 0 <= recommended < len(solutions):
                recommended = 0
            return ErrorExplanation(
                error_type=str(obj["error_type"]),
                reason=str(obj.get("reason", "")),
                possible_causes=[str(c) for c in obj.get("possible_causes") or []],
                solutions=solutions,
                recommended_solution=recommended,
                documentation_links=[
                    str(link) for link in obj.get("documentation_links") or []
                ],
            )
        return None

    def clean_response_text(self, text: str) -> str:
        """Remove special tokens and markdown code fences."""
        text = re.sub(r"<\|.*?\|>", "", text)
        text = re.sub(r"```[a-zA-Z]*", "", text)
        return text.strip()

    def _load(self, candidate: str) -> Any:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            pass
        try:
            return json.loads(self._fix_json_newlines(candidate))
        except json.JSONDecodeError:
            pass
        try:
            return ast.literal_eval(candidate)  # noqa: S307
        except (ValueError, SyntaxError, TypeError):
            return None

    def _confidence(self, value: Any) -> int:
        # NaN raises ValueError and infinity raises OverflowError
        try:
            return max(0, min(100, int(float(value))))
        except (TypeError, ValueError, OverflowError):
            return 0

    def _files(self, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(f) for f in value]

    def _risk(self, value: Any) -> RiskLevel:
        if isinstance(value, str):
            try:
                return RiskLevel.from_str(value)
            except ValueError:
                pass
        return RiskLevel.LOW

    def _fix_json_newlines(self, text: str) -> str:
        """
        Escape raw newlines and tabs that appear inside JSON strings.

        Some local models emit literal line breaks in string values.
        """
        result = []
        in_string = False
        escape_next = False

        for char in text:
            if escape_next:
                result.append(char)
                escape_next = False
            elif char == "\\":
                result.append(char)
                escape_next = True
            elif char == '"':
                result.append(char)
                in_string = not in_string
            elif char == "\n" and in_string:
                result.append("\\n")
            elif char == "\t" and in_string:
                result.append("\\t")
            else:
                result.append(char)

        return "".join(result)

    def _find_json_objects(self, text: str) -> Generator[str, None, None]:
        """Yield balanced top-level {...} and [...] spans."""
        depth = 0
        start = -1

        for i, char in enumerate(text):
            if char in "{[":
                if depth == 0:
                    start = i
                depth += 1
            elif char in "}]" and depth:
                depth -= 1
                if depth == 0:
                    yield text[start : i + 1]
