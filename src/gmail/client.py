"""Gmail REST client: bearer-token calls with the refresh-once retry contract."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from src.errors import AuthError, AuthFailure, ProviderError
from src.gmail.types import MessagePart, MessageRef, RawMessage

if TYPE_CHECKING:
    from src.auth.credentials import CredentialStore

logger = logging.getLogger(__name__)

GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1/users/me"


class GmailClient:
    """Thin async wrapper around the Gmail v1 REST endpoints this app reads.

    Every call goes through ``_request``, which implements the retry contract:
    a 401 triggers exactly one silent credential refresh and one retry.  A
    second 401 is final: it means the account is genuinely unauthorized, not
    that the token had simply expired.

    Usage::

        gmail = GmailClient(store, http)
        refs = await gmail.search_messages("from:acme invoice", max_results=10)
        message = await gmail.get_message(refs[0].id)
    """

    def __init__(
        self,
        credentials: CredentialStore,
        http: httpx.AsyncClient,
        base_url: str = GMAIL_API_BASE,
    ) -> None:
        self._credentials = credentials
        self._http = http
        self._base_url = base_url.rstrip("/")

    # ── Public API ─────────────────────────────────────────────────────────────

    async def get_profile(self) -> dict[str, Any]:
        """Return the mailbox profile (emailAddress, messagesTotal, threadsTotal)."""
        return await self._get_json("/profile")

    async def list_labels(self) -> list[dict[str, Any]]:
        """Return every label (system and user), sorted alphabetically by name."""
        data = await self._get_json("/labels")
        labels = [lbl for lbl in data.get("labels", []) if isinstance(lbl, dict)]
        labels.sort(key=lambda lbl: str(lbl.get("name", "")).lower())
        return labels

    async def search_messages(self, query: str, max_results: int = 10) -> list[MessageRef]:
        """Run one page of ``messages.list`` and return the hits in relevance order."""
        data = await self._get_json("/messages", params={"q": query, "maxResults": max_results})
        refs = [
            MessageRef(id=str(m["id"]), thread_id=str(m.get("threadId", "")))
            for m in data.get("messages", [])
            if isinstance(m, dict) and m.get("id")
        ]
        logger.debug("Search %r → %d hit(s)", query, len(refs))
        return refs

    async def get_message(self, message_id: str) -> RawMessage:
        """Fetch one message with its full MIME payload."""
        data = await self._get_json(f"/messages/{message_id}", params={"format": "full"})
        return self._parse_message(data)

    # ── Internal helpers ───────────────────────────────────────────────────────

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        response = await self._request("GET", path, params=params)
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(response.status_code, "response was not valid JSON") from exc
        if not isinstance(data, dict):
            raise ProviderError(response.status_code, "unexpected response shape")
        return data

    async def _request(
        self, method: str, path: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        """Send an authenticated request, refreshing the token once on 401."""
        credential = self._credentials.require()
        response = await self._send(method, path, params, credential.token)

        if response.status_code == httpx.codes.UNAUTHORIZED:
            logger.info("Gmail returned 401 for %s %s; refreshing token once", method, path)
            credential = await self._credentials.refresh()
            response = await self._send(method, path, params, credential.token)
            if response.status_code == httpx.codes.UNAUTHORIZED:
                raise AuthError(AuthFailure.REJECTED, f"{method} {path}")

        if not response.is_success:
            raise ProviderError(response.status_code, response.reason_phrase)
        return response

    async def _send(
        self, method: str, path: str, params: dict[str, Any] | None, token: str
    ) -> httpx.Response:
        logger.debug("Gmail → %s %s %s", method, path, params or "")
        try:
            return await self._http.request(
                method,
                f"{self._base_url}{path}",
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            raise ProviderError(None, str(exc)) from exc

    @staticmethod
    def _parse_message(data: dict[str, Any]) -> RawMessage:
        """Map a ``format=full`` message resource to a RawMessage."""
        return RawMessage(
            id=str(data.get("id", "")),
            thread_id=str(data.get("threadId", "")),
            payload=GmailClient._parse_part(data.get("payload") or {}),
        )

    @staticmethod
    def _parse_part(data: dict[str, Any]) -> MessagePart:
        body = data.get("body") or {}
        headers = {
            str(h["name"]): str(h.get("value", ""))
            for h in data.get("headers", [])
            if isinstance(h, dict) and "name" in h
        }
        return MessagePart(
            mime_type=str(data.get("mimeType", "")),
            data=body.get("data") or None,
            headers=headers,
            parts=[GmailClient._parse_part(p) for p in data.get("parts", []) if isinstance(p, dict)],
        )
