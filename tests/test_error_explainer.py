"""Tests for ErrorExplainer's pattern, model and fallback paths."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from opsmate.models.tool import ToolContext
from opsmate.services.error_explainer import (
    MAX_PROMPT_ERROR_CHARS,
    ErrorExplainer,
    build_explanation_prompt,
)
from opsmate.utils.errors import InferenceFailure

MODEL_REPLY = (
    '{"error_type": "Out Of Memory", "reason": "the container was OOM killed", '
    '"possible_causes": ["memory limit too low"], '
    '"solutions": [{"description": "raise the limit", "command": null, '
    '"risk_level": "medium"}], "recommended_solution": 0}'
)


def _llm(reply=None, error=None):
    llm = MagicMock()
    llm.complete = AsyncMock(return_value=reply, side_effect=error)
    return llm


class TestErrorExplainer:
    @pytest.mark.asyncio
    async def test_pattern_match_skips_model(self):
        llm = _llm(MODEL_REPLY)
        explainer = ErrorExplainer(llm=llm)
        explanation = await explainer.explain("error: current-context is not set")
        assert explanation.error_type == "Kubectl Context Not Set"
        llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_model_explains_unknown_error(self):
        explainer = ErrorExplainer(llm=_llm(MODEL_REPLY))
        explanation = await explainer.explain("Killed", ToolContext(environment="staging"))
        assert explanation.error_type == "Out Of Memory"
        assert explanation.recommended.description == "raise the limit"

    @pytest.mark.asyncio
    async def test_model_failure_falls_back(self):
        explainer = ErrorExplainer(llm=_llm(error=InferenceFailure("down")))
        explanation = await explainer.explain("Killed")
        assert explanation.error_type == "Unknown Error"

    @pytest.mark.asyncio
    async def test_unusable_reply_falls_back(self):
        explainer = ErrorExplainer(llm=_llm("I think it crashed"))
        explanation = await explainer.explain("Killed")
        assert explanation.error_type == "Unknown Error"
        assert explanation.reason == "Killed"

    @pytest.mark.asyncio
    async def test_without_model(self):
        explanation = await ErrorExplainer().explain("Killed")
        assert explanation.error_type == "Unknown Error"


class TestBuildExplanationPrompt:
    def test_includes_context(self):
        prompt = build_explanation_prompt(
            "boom", ToolContext(environment="production", working_directory="/srv")
        )
        assert "boom" in prompt
        assert "Working Directory: /srv" in prompt
        assert "Environment: production" in prompt

    def test_truncates_long_errors(self):
        prompt = build_explanation_prompt("x" * (MAX_PROMPT_ERROR_CHARS + 50))
        assert "...(truncated)" in prompt
        assert "x" * (MAX_PROMPT_ERROR_CHARS + 1) not in prompt
