"""Tests for the confirmation policy helpers."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from opsmate.models.risk import RiskLevel
from opsmate.models.tool import Translation
from opsmate.services.confirmation import (
    ConfirmationRequest,
    ConfirmationType,
    auto_confirm,
    confirmation_phrase,
    confirmation_type,
    request_confirmation,
)


def _request(command: str, level: RiskLevel, is_production: bool = False):
    return ConfirmationRequest(Translation(command=command), level, is_production)


class TestConfirmationType:
    @pytest.mark.parametrize(
        "level, is_production, expected",
        [
            (RiskLevel.LOW, True, ConfirmationType.NONE),
            (RiskLevel.MEDIUM, True, ConfirmationType.YES_NO),
            (RiskLevel.HIGH, False, ConfirmationType.YES_NO),
            (RiskLevel.HIGH, True, ConfirmationType.TYPED),
            (RiskLevel.CRITICAL, False, ConfirmationType.TYPED),
        ],
    )
    def test_levels(self, level, is_production, expected):
        assert confirmation_type(level, is_production) == expected


class TestConfirmationPhrase:
    def test_resource_name_after_delete(self):
        assert confirmation_phrase("kubectl delete deployment nginx", False) == "nginx"

    def test_node_after_drain(self):
        assert confirmation_phrase("kubectl drain node-01", True) == "node-01"

    def test_production_without_resource(self):
        assert confirmation_phrase("DROP TABLE users", True) == "production"

    def test_second_word_otherwise(self):
        assert confirmation_phrase("DROP TABLE users", False) == "TABLE"


class TestConfirmationRequest:
    def test_typed_request_accepts_phrase_only(self):
        request = _request("kubectl delete deployment nginx", RiskLevel.HIGH, True)
        assert request.typed
        assert request.phrase == "nginx"
        assert request.accepts(" nginx ")
        assert not request.accepts("yes")

    def test_yes_no_request(self):
        request = _request("kubectl apply -f x.yaml", RiskLevel.MEDIUM)
        assert request.kind == ConfirmationType.YES_NO
        assert request.phrase is None
        assert request.accepts("Y")
        assert not request.accepts("no")


class TestRequestConfirmation:
    @pytest.mark.asyncio
    async def test_low_needs_no_callback(self):
        confirm = MagicMock()
        assert await request_confirmation(confirm, _request("kubectl get pods", RiskLevel.LOW))
        confirm.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_callback_declines(self):
        assert not await request_confirmation(
            None, _request("docker rm web", RiskLevel.HIGH)
        )

    @pytest.mark.asyncio
    async def test_sync_callback(self):
        confirm = MagicMock(return_value=False)
        request = _request("docker rm web", RiskLevel.HIGH)
        assert not await request_confirmation(confirm, request)
        confirm.assert_called_once_with(request)

    @pytest.mark.asyncio
    async def test_async_callback(self):
        confirm = AsyncMock(return_value=True)
        assert await request_confirmation(confirm, _request("docker rm web", RiskLevel.HIGH))

    @pytest.mark.asyncio
    async def test_auto_confirm(self):
        assert await request_confirmation(
            auto_confirm, _request("DROP TABLE users", RiskLevel.CRITICAL)
        )
