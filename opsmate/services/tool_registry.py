"""
Tool registry service for resolving adapters.

Holds adapters in registration order for detection and a name index for exact
lookup. Read-only once built, so one registry can be shared by every run.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from opsmate.models.risk import RiskLevel
from opsmate.models.tool import ToolContext
from opsmate.services.error_patterns import ErrorPatternMatcher
from opsmate.services.risk_policy import RiskPolicy, build_default_policies
from opsmate.tools import (
    Apache2Tool,
    DockerTool,
    DrushTool,
    KubectlTool,
    NetworkTool,
    NginxTool,
    SQLDialect,
    SQLTool,
)
from opsmate.tools.base import ToolAdapter
from opsmate.utils.errors import UnknownTool
from opsmate.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class ToolMatch:
    """Detection result: the adapter and how sure we are."""

    tool: ToolAdapter
    confidence: float

    @property
    def name(self) -> str:
        return self.tool.name


class ToolRegistry:
    """Ordered collection of tool adapters."""

    def __init__(self) -> None:
        self._tools: List[ToolAdapter] = []
        self._index: Dict[str, ToolAdapter] = {}

    def register(self, tool: ToolAdapter) -> None:
        """
        Add an adapter.

        Raises:
            ValueError: If an adapter with the same name is already registered.
        """
        if tool.name in self._index:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools.append(tool)
        self._index[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def detect_tool(self, user_input: str) -> Optional[ToolMatch]:
        """
        Pick the adapter the input is aimed at.

        An explicit invocation wins immediately, checked in registration
        order. Otherwise the highest nonzero heuristic score wins, ties going
        to the earlier registration.

        Args:
            user_input: Natural language or a raw command.

        Returns:
            The match, or None when no adapter scores above zero.
        """
        for tool in self._tools:
            if tool.is_explicit(user_input):
                logger.info(f"Explicit invocation detected: {tool.name}")
                return ToolMatch(tool, 1.0)

        best: Optional[ToolMatch] = None
        for tool in self._tools:
            score = tool.detect_intent(user_input)
            if score > 0 and (best is None or score > best.confidence):
                best = ToolMatch(tool, score)

        if best is None:
            logger.info(f"No tool detected for input: {user_input[:80]}")
        else:
            logger.info(f"Detected tool {best.name} ({best.confidence:.2f})")
        return best

    def invoked_tools(self, command: str) -> List[ToolAdapter]:
        """Adapters whose program the command runs, in registration order."""
        return [tool for tool in self._tools if tool.invokes(command)]

    def command_tool(self, command: str) -> Optional[ToolAdapter]:
        """
        The adapter that runs a command: the one its first word invokes, else
        the first one it invokes anywhere (after sudo, a pipe, "--" ...).
        """
        for tool in self._tools:
            if tool.is_raw_command(command):
                return tool
        invoked = self.invoked_tools(command)
        return invoked[0] if invoked else None

    def classify_command(
        self,
        command: str,
        tool: ToolAdapter,
        context: Optional[ToolContext] = None,
    ) -> RiskLevel:
        """
        Risk of a command under its own tool's policy and the policy of every
        other tool it invokes, whichever is most severe.

        A pipeline such as ``kubectl get pods -o name | xargs docker rm`` is
        judged by the docker rules too, whatever tool it was filed under.
        """
        level = tool.classify_risk(command, context)
        for other in self.invoked_tools(command):
            if other is not tool:
                level = max(level, other.classify_risk(command, context))
        return level

    def get_tool(self, name: str) -> ToolAdapter:
        """Exact, case-sensitive lookup. Raises UnknownTool."""
        tool = self._index.get(name)
        if tool is None:
            raise UnknownTool(name)
        return tool

    def find_tool(self, name: str) -> Optional[ToolAdapter]:
        return self._index.get(name)

    def list_tools(self) -> List[str]:
        return [tool.name for tool in self._tools]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._index


def create_default_registry(
    policies: Optional[Dict[str, RiskPolicy]] = None,
    matcher: Optional[ErrorPatternMatcher] = None,
) -> ToolRegistry:
    """
    Registry with kubectl, docker, mysql, drush, nginx, apache2 and network,
    in that order.
    """
    policies = policies or build_default_policies()
    matcher = matcher or ErrorPatternMatcher()

    registry = ToolRegistry()
    registry.register(KubectlTool(policies["kubectl"], matcher))
    registry.register(DockerTool(policies["docker"], matcher))
    registry.register(SQLTool(policies["sql"], matcher, SQLDialect.MYSQL))
    registry.register(DrushTool(policies["drush"], matcher))
    registry.register(NginxTool(policies["nginx"], matcher))
    registry.register(Apache2Tool(policies["apache2"], matcher))
    registry.register(NetworkTool(policies["network"], matcher))
    return registry
