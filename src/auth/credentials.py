"""Gmail access-token storage, validation, silent refresh and revocation."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

import httpx

from src.errors import AuthError, AuthFailure

logger = logging.getLogger(__name__)

_DEFAULT_CREDENTIAL_PATH = Path("data/credential.json")
_PROFILE_URL = "https://gmail.googleapis.com/gmail/v1/users/me/profile"
_REVOKE_URL = "https://oauth2.googleapis.com/revoke"


@dataclass(frozen=True)
class Credential:
    """An opaque OAuth bearer token.  Expiry is unknown client-side."""

    token: str


# ── Identity platform interface ────────────────────────────────────────────────


@runtime_checkable
class IdentityProvider(Protocol):
    """Acquires tokens from the platform's sign-in flow."""

    async def acquire_token(self, interactive: bool) -> str:
        """Return a fresh access token.

        With ``interactive=False`` implementations must never prompt the user;
        they raise ``AuthError(SILENT_REFRESH_FAILED)`` instead.
        """
        ...

    async def clear_cached_tokens(self) -> None:
        """Forget every token the platform cached on our behalf."""
        ...


# ── Store ──────────────────────────────────────────────────────────────────────


class CredentialStore:
    """Owns the single Gmail credential shared by every pipeline stage.

    The credential is persisted to a small JSON file so it survives between
    CLI invocations.  Silent refreshes are coalesced: while one refresh is in
    flight, every other caller awaits the same task instead of starting a
    second sign-in flow.

    Usage::

        store = CredentialStore(identity, http)
        if not await store.check_valid():
            await store.authenticate(interactive=True)
    """

    def __init__(
        self,
        identity: IdentityProvider,
        http: httpx.AsyncClient,
        path: str | Path = _DEFAULT_CREDENTIAL_PATH,
    ) -> None:
        self._identity = identity
        self._http = http
        self._path = Path(path)
        self._credential: Credential | None = None
        self._loaded = False
        self._refresh_task: asyncio.Task[Credential] | None = None

    # ── Read ───────────────────────────────────────────────────────────────────

    @property
    def credential(self) -> Credential | None:
        """The current credential, loading it from disk on first access."""
        if not self._loaded:
            self._credential = self._read()
            self._loaded = True
        return self._credential

    def require(self) -> Credential:
        """Return the current credential or raise AuthError(NOT_AUTHENTICATED)."""
        credential = self.credential
        if credential is None:
            raise AuthError(AuthFailure.NOT_AUTHENTICATED)
        return credential

    async def check_valid(self) -> bool:
        """Probe Gmail with the stored token.

        Only an explicit 401 evicts the credential.  Network errors and other
        statuses report ``False`` but keep the token for the next attempt.
        """
        credential = self.credential
        if credential is None:
            return False
        try:
            response = await self._http.get(
                _PROFILE_URL, headers={"Authorization": f"Bearer {credential.token}"}
            )
        except httpx.HTTPError as exc:
            logger.warning("Credential probe failed: %s", exc)
            return False

        if response.status_code == httpx.codes.UNAUTHORIZED:
            logger.info("Stored credential was rejected by Gmail; evicting it")
            self._evict()
            return False
        if response.is_success:
            return True
        logger.warning("Credential probe returned HTTP %d", response.status_code)
        return False

    # ── Write ──────────────────────────────────────────────────────────────────

    async def authenticate(self, interactive: bool) -> Credential:
        """Acquire a new credential through the identity flow and persist it."""
        token = await self._identity.acquire_token(interactive)
        if not token:
            failure = (
                AuthFailure.NOT_AUTHENTICATED if interactive else AuthFailure.SILENT_REFRESH_FAILED
            )
            raise AuthError(failure, "identity flow returned an empty token")
        credential = Credential(token=token)
        self._store(credential)
        logger.info("Gmail credential acquired (interactive=%s)", interactive)
        return credential

    async def refresh(self) -> Credential:
        """Silently replace the credential, sharing one in-flight refresh."""
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self.authenticate(interactive=False))
            logger.debug("Started silent credential refresh")
        else:
            logger.debug("Joining in-flight credential refresh")
        return await asyncio.shield(self._refresh_task)

    async def revoke(self) -> None:
        """Revoke remotely (best effort) and always clear local state."""
        credential = self.credential
        if credential is not None:
            try:
                await self._http.post(_REVOKE_URL, params={"token": credential.token})
            except httpx.HTTPError as exc:
                logger.warning("Remote token revocation failed: %s", exc)

        self._evict()
        try:
            await self._identity.clear_cached_tokens()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not clear the identity token cache: %s", exc)
        logger.info("Signed out of Gmail")

    # ── Persistence ────────────────────────────────────────────────────────────

    def _read(self) -> Credential | None:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable credential file %s: %s", self._path, exc)
            return None
        token = data.get("access_token") if isinstance(data, dict) else None
        return Credential(token=str(token)) if token else None

    def _store(self, credential: Credential) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps({"access_token": credential.token}), encoding="utf-8")
        self._credential = credential
        self._loaded = True

    def _evict(self) -> None:
        self._credential = None
        self._loaded = True
        self._path.unlink(missing_ok=True)
