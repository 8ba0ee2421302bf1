"""Single-turn completion client for the query-rewrite and synthesis calls."""

import logging
import os

import anthropic
from anthropic import AsyncAnthropic

from src.errors import ModelError

logger = logging.getLogger(__name__)

_MAX_TOKENS = 2048
# Extended thinking only pays off on the larger models; Haiku answers directly.
_THINKING_MODEL_PREFIXES: tuple[str, ...] = ("claude-opus", "claude-sonnet")
_DEFAULT_THINKING_BUDGET = 4096


def thinking_budget_for(model_id: str) -> int:
    """Return the thinking budget (in tokens) used for a model; 0 disables thinking."""
    return _DEFAULT_THINKING_BUDGET if model_id.startswith(_THINKING_MODEL_PREFIXES) else 0


class ModelClient:
    """Sends one prompt to Claude and returns the text of the reply.

    Usage::

        model = ModelClient()
        text = await model.complete(prompt, model_id="claude-haiku-4-5-20251001")
    """

    def __init__(self, api_key: str | None = None, thinking_budget: int | None = None) -> None:
        """
        Raises:
            ModelError: if no API key is given and ANTHROPIC_API_KEY is unset.
        """
        resolved_key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        if not resolved_key:
            raise ModelError("No Anthropic API key configured")
        self._client = AsyncAnthropic(api_key=resolved_key)
        self._thinking_budget = thinking_budget

    async def complete(self, prompt: str, model_id: str) -> str:
        """Return the concatenated text blocks of the model's reply.

        Raises:
            ModelError: if the API call fails for any reason.
        """
        budget = (
            self._thinking_budget
            if self._thinking_budget is not None
            else thinking_budget_for(model_id)
        )
        thinking: dict[str, object] = (
            {"type": "enabled", "budget_tokens": budget} if budget > 0 else {"type": "disabled"}
        )
        try:
            response = await self._client.messages.create(
                model=model_id,
                max_tokens=_MAX_TOKENS + max(budget, 0),
                thinking=thinking,  # type: ignore[arg-type]
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            raise ModelError(f"Error during model call: {exc}") from exc

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        logger.debug(
            "Model %s replied with %d chars (stop_reason=%r)",
            model_id,
            len(text),
            response.stop_reason,
        )
        return text
