"""Search-then-fetch retrieval of grounding messages."""

import logging

from src.errors import AuthError, ProviderError
from src.gmail.client import GmailClient
from src.gmail.types import FetchOutcome, MessageRef, SkippedMessage

logger = logging.getLogger(__name__)

#: Hits requested from messages.list.
SEARCH_LIMIT = 10
#: Hits actually fetched; bounds synthesis context size and latency.
MAX_FETCH = 10


class MailRetriever:
    """Runs the search expression and fetches full bodies for the top hits.

    Fetches are issued one at a time in relevance order.  A message that fails
    to fetch is recorded in ``FetchOutcome.skipped`` and the batch carries on,
    so the answer degrades to fewer sources instead of failing outright.
    """

    def __init__(self, gmail: GmailClient, max_fetch: int = MAX_FETCH) -> None:
        self._gmail = gmail
        self._max_fetch = max_fetch

    async def search(self, query: str, limit: int = SEARCH_LIMIT) -> list[MessageRef]:
        """Single-page search.  Errors propagate; they are fatal to the cycle."""
        return await self._gmail.search_messages(query, max_results=limit)

    async def fetch_all(self, refs: list[MessageRef]) -> FetchOutcome:
        """Fetch the first ``max_fetch`` refs, skipping any that fail."""
        outcome = FetchOutcome()
        for ref in refs[: self._max_fetch]:
            try:
                message = await self._gmail.get_message(ref.id)
            except (ProviderError, AuthError) as exc:
                logger.warning("Skipping message %s: %s", ref.id, exc)
                outcome.skipped.append(SkippedMessage(message_id=ref.id, reason=str(exc)))
                continue
            outcome.messages.append(message)

        if outcome.skipped:
            logger.info(
                "Fetched %d message(s), skipped %d",
                len(outcome.messages),
                len(outcome.skipped),
            )
        return outcome
