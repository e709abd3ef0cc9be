"""Shared fixtures and collaborator fakes for opsmate tests."""

from typing import Dict, List, Optional, Union

import pytest

from opsmate.models.tool import ExecutionResult, ToolContext, Translation
from opsmate.services.audit_service import InMemoryAuditSink
from opsmate.services.tool_registry import create_default_registry


class FakeOracle:
    """Replays scripted translations; the last one repeats forever."""

    def __init__(self, *responses: Union[Translation, Exception]):
        self.responses: List[Union[Translation, Exception]] = list(responses)
        self.prompts: List[str] = []

    async def infer(self, prompt: str) -> Translation:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        # Hand out copies so callers may mutate them
        return Translation(
            command=response.command,
            confidence=response.confidence,
            reasoning=response.reasoning,
            tool_name=response.tool_name,
            requires_files=list(response.requires_files),
        )

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return ""


class FakeExecutor:
    """Returns canned results per command, exit 0 with "ok" otherwise."""

    def __init__(self, results: Optional[Dict[str, Union[ExecutionResult, Exception]]] = None):
        self.results = results or {}
        self.commands: List[str] = []

    async def execute(self, command: str) -> ExecutionResult:
        self.commands.append(command)
        result = self.results.get(command, ExecutionResult(0, stdout="ok"))
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def registry():
    return create_default_registry()


@pytest.fixture
def context() -> ToolContext:
    return ToolContext(environment="development")


@pytest.fixture
def prod_context() -> ToolContext:
    return ToolContext(is_production=True, environment="production")


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def make_oracle():
    return FakeOracle


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()
