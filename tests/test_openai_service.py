"""Tests for OpenAIService - the inference oracle client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from opsmate.controllers.agent_loop import AgentLoop
from opsmate.models.agent import STOP_INFERENCE_ERROR, AgentPhase
from opsmate.services.openai_service import OpenAIService
from opsmate.utils.errors import InferenceFailure


def _response(content, usage=None):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=usage,
    )


@pytest.fixture
def client():
    mock = MagicMock()
    mock.chat.completions.create = AsyncMock()
    return mock


@pytest.fixture
def service(client):
    return OpenAIService(
        base_url="http://localhost:11434/v1", model="test-model", client=client
    )


class TestOpenAIServiceInit:
    @patch("opsmate.services.openai_service.AsyncOpenAI")
    def test_init_creates_client_with_settings(self, mock_openai_cls):
        svc = OpenAIService(
            base_url="http://localhost:5000/v1", api_key="test-key", model="m"
        )
        assert svc.model == "m"
        call_kwargs = mock_openai_cls.call_args
        assert call_kwargs.kwargs["base_url"] == "http://localhost:5000/v1"
        assert call_kwargs.kwargs["api_key"] == "test-key"

    @patch("opsmate.services.openai_service.AsyncOpenAI")
    def test_init_configures_timeout(self, mock_openai_cls):
        OpenAIService(timeout=600.0)
        timeout = mock_openai_cls.call_args.kwargs["timeout"]
        assert timeout.read == 600.0
        assert timeout.connect == 30.0

    @patch("opsmate.services.openai_service.Config")
    @patch("opsmate.services.openai_service.AsyncOpenAI")
    def test_init_falls_back_to_config(self, mock_openai_cls, mock_config):
        mock_config.OPSMATE_BASE_URL = "http://gpu-box:8000/v1"
        mock_config.OPSMATE_API_KEY = "k"
        mock_config.OPSMATE_MODEL = "qwen"
        mock_config.OPSMATE_TIMEOUT = 120.0

        svc = OpenAIService()
        assert svc.base_url == "http://gpu-box:8000/v1"
        assert svc.model == "qwen"
        assert mock_openai_cls.call_args.kwargs["timeout"].read == 120.0


class TestComplete:
    @pytest.mark.asyncio
    async def test_returns_content(self, service, client):
        client.chat.completions.create.return_value = _response("hello")
        assert await service.complete("hi") == "hello"

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["messages"][0]["role"] == "system"
        assert kwargs["messages"][1] == {"role": "user", "content": "hi"}

    @pytest.mark.asyncio
    async def test_records_usage(self, service, client):
        usage = SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15)
        client.chat.completions.create.return_value = _response("x", usage)
        await service.complete("hi")
        assert service.last_telemetry["usage"]["total_tokens"] == 15
        assert service.last_telemetry["model"] == "test-model"

    @pytest.mark.asyncio
    async def test_transport_error(self, service, client):
        client.chat.completions.create.side_effect = httpx.ConnectError("refused")
        with pytest.raises(InferenceFailure, match="refused"):
            await service.complete("hi")

    @pytest.mark.asyncio
    async def test_no_choices(self, service, client):
        client.chat.completions.create.return_value = SimpleNamespace(choices=[], usage=None)
        with pytest.raises(InferenceFailure, match="no choices"):
            await service.complete("hi")


class TestInfer:
    @pytest.mark.asyncio
    async def test_parses_translation(self, service, client):
        client.chat.completions.create.return_value = _response(
            '```json\n{"command": "docker ps", "confidence": 88, "reasoning": "list"}\n```'
        )
        translation = await service.infer("list containers")
        assert translation.command == "docker ps"
        assert translation.confidence == 88

    @pytest.mark.asyncio
    async def test_unparseable_reply(self, service, client):
        client.chat.completions.create.return_value = _response("no idea, sorry")
        with pytest.raises(InferenceFailure, match="No command found"):
            await service.infer("list containers")

    @pytest.mark.asyncio
    async def test_infinite_confidence_is_not_fatal(self, service, client):
        client.chat.completions.create.return_value = _response(
            '{"command": "kubectl get pods", "confidence": 1e999}'
        )
        translation = await service.infer("list pods")
        assert translation.command == "kubectl get pods"
        assert translation.confidence == 0


class TestAgentLoopWithService:
    @pytest.mark.asyncio
    async def test_odd_replies_leave_a_terminal_state(self, service, client, registry, executor):
        client.chat.completions.create.side_effect = [
            _response('{"command": "kubectl get pods", "confidence": 1e999}'),
            _response("no idea, sorry"),
        ]
        loop = AgentLoop(
            task="why is web down",
            registry=registry,
            oracle=service,
            executor=executor,
        )
        state = await loop.run_until_complete()

        assert executor.commands == ["kubectl get pods"]
        assert state.status.phase == AgentPhase.STOPPED
        assert state.status.reason == STOP_INFERENCE_ERROR
