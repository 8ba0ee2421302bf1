"""Google OAuth sign-in flow behind the IdentityProvider interface."""

import asyncio
import logging
from pathlib import Path

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from src.errors import AuthError, AuthFailure

logger = logging.getLogger(__name__)

GMAIL_SCOPES: list[str] = ["https://www.googleapis.com/auth/gmail.readonly"]


class GoogleIdentityProvider:
    """Acquires Gmail access tokens with google-auth.

    The authorized-user JSON (access + refresh token) is cached in
    ``token_cache_path``.  Silent acquisition only ever uses the refresh token;
    interactive acquisition opens the browser consent screen when nothing
    cached can be reused.

    google-auth is synchronous, so every call runs in a worker thread.
    """

    def __init__(
        self,
        client_secrets_path: str | Path,
        token_cache_path: str | Path,
        scopes: list[str] | None = None,
    ) -> None:
        self._client_secrets_path = Path(client_secrets_path)
        self._token_cache_path = Path(token_cache_path)
        self._scopes = scopes or GMAIL_SCOPES

    async def acquire_token(self, interactive: bool) -> str:
        return await asyncio.to_thread(self._acquire, interactive)

    async def clear_cached_tokens(self) -> None:
        self._token_cache_path.unlink(missing_ok=True)
        logger.debug("Cleared Google token cache %s", self._token_cache_path)

    # ── Internal ───────────────────────────────────────────────────────────────

    def _acquire(self, interactive: bool) -> str:
        creds = self._load_cached()

        if not interactive:
            # A 401 means the cached access token is already bad, so always
            # go through the refresh token rather than returning it again.
            if creds is None or not creds.refresh_token:
                raise AuthError(AuthFailure.SILENT_REFRESH_FAILED, "no refresh token cached")
            return self._refresh(creds)

        if creds is not None and creds.valid:
            return str(creds.token)
        if creds is not None and creds.refresh_token:
            try:
                return self._refresh(creds)
            except AuthError:
                logger.info("Cached refresh token no longer works; starting consent flow")
        return self._run_consent_flow()

    def _refresh(self, creds: Credentials) -> str:
        try:
            creds.refresh(Request())
        except GoogleAuthError as exc:
            # RefreshError for a revoked grant, TransportError when the token
            # endpoint is unreachable.
            raise AuthError(AuthFailure.SILENT_REFRESH_FAILED, str(exc)) from exc
        self._save(creds)
        logger.debug("Refreshed Google access token")
        return str(creds.token)

    def _run_consent_flow(self) -> str:
        if not self._client_secrets_path.exists():
            raise AuthError(
                AuthFailure.NOT_AUTHENTICATED,
                f"OAuth client secrets not found at {self._client_secrets_path}",
            )
        try:
            flow = InstalledAppFlow.from_client_secrets_file(
                str(self._client_secrets_path), self._scopes
            )
            creds = flow.run_local_server(port=0)
        except (GoogleAuthError, ValueError) as exc:
            raise AuthError(AuthFailure.NOT_AUTHENTICATED, str(exc)) from exc
        self._save(creds)
        return str(creds.token)

    def _load_cached(self) -> Credentials | None:
        if not self._token_cache_path.exists():
            return None
        try:
            return Credentials.from_authorized_user_file(
                str(self._token_cache_path), self._scopes
            )
        except ValueError as exc:
            logger.warning("Ignoring malformed token cache %s: %s", self._token_cache_path, exc)
            return None

    def _save(self, creds: Credentials) -> None:
        self._token_cache_path.parent.mkdir(parents=True, exist_ok=True)
        self._token_cache_path.write_text(creds.to_json(), encoding="utf-8")
