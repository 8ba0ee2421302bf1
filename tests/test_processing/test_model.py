"""Tests for ModelClient (Claude integration)."""

from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest
from anthropic.types import TextBlock, ThinkingBlock

from src.errors import ModelError
from src.processing.model import ModelClient, thinking_budget_for


def _mock_response(*blocks: object) -> MagicMock:
    r = MagicMock()
    r.content = list(blocks)
    r.stop_reason = "end_turn"
    return r


class TestThinkingBudget:
    def test_haiku_answers_directly(self) -> None:
        assert thinking_budget_for("claude-haiku-4-5-20251001") == 0

    def test_larger_models_think(self) -> None:
        assert thinking_budget_for("claude-sonnet-4-5") > 0
        assert thinking_budget_for("claude-opus-4-1") > 0


class TestComplete:
    @pytest.fixture
    def model(self) -> ModelClient:
        return ModelClient(api_key="test-key")

    async def test_joins_text_blocks_and_skips_thinking(self, model: ModelClient) -> None:
        model._client.messages.create = AsyncMock(
            return_value=_mock_response(
                ThinkingBlock(type="thinking", thinking="pondering", signature="sig"),
                TextBlock(type="text", text="from:acme "),
                TextBlock(type="text", text="invoice"),
            )
        )
        assert await model.complete("prompt", "claude-sonnet-4-5") == "from:acme invoice"

    async def test_thinking_disabled_for_haiku(self, model: ModelClient) -> None:
        model._client.messages.create = AsyncMock(
            return_value=_mock_response(TextBlock(type="text", text="ok"))
        )
        await model.complete("the prompt", "claude-haiku-4-5-20251001")

        kwargs = model._client.messages.create.await_args.kwargs
        assert kwargs["model"] == "claude-haiku-4-5-20251001"
        assert kwargs["thinking"] == {"type": "disabled"}
        assert kwargs["messages"] == [{"role": "user", "content": "the prompt"}]

    async def test_thinking_budget_added_to_max_tokens(self) -> None:
        model = ModelClient(api_key="k", thinking_budget=2000)
        model._client.messages.create = AsyncMock(
            return_value=_mock_response(TextBlock(type="text", text="ok"))
        )
        await model.complete("p", "claude-haiku-4-5-20251001")

        kwargs = model._client.messages.create.await_args.kwargs
        assert kwargs["thinking"] == {"type": "enabled", "budget_tokens": 2000}
        assert kwargs["max_tokens"] > 2000

    async def test_api_error_becomes_model_error(self, model: ModelClient) -> None:
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        model._client.messages.create = AsyncMock(
            side_effect=anthropic.APIConnectionError(request=request)
        )
        with pytest.raises(ModelError, match="Error during model call"):
            await model.complete("p", "m")

    async def test_no_text_blocks_gives_empty_string(self, model: ModelClient) -> None:
        model._client.messages.create = AsyncMock(return_value=_mock_response())
        assert await model.complete("p", "m") == ""


class TestApiKey:
    def test_missing_key_is_a_model_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(ModelError, match="No Anthropic API key configured"):
            ModelClient()

    def test_env_key_used_when_none_given(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        assert ModelClient()._client.api_key == "sk-env"

    def test_explicit_key_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        assert ModelClient(api_key="sk-request")._client.api_key == "sk-request"
