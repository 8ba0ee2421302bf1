"""Error taxonomy shared by every pipeline stage."""

from enum import Enum


class RagError(Exception):
    """Base class for all errors raised by the question-answering pipeline."""


class AuthFailure(str, Enum):
    """Why an authenticated operation could not proceed."""

    NOT_AUTHENTICATED = "not_authenticated"
    SILENT_REFRESH_FAILED = "silent_refresh_failed"
    REVOKED = "revoked"
    REJECTED = "rejected"


_AUTH_MESSAGES: dict[AuthFailure, str] = {
    AuthFailure.NOT_AUTHENTICATED: "Not authenticated",
    AuthFailure.SILENT_REFRESH_FAILED: "Could not refresh the Gmail token without user interaction",
    AuthFailure.REVOKED: "Gmail access has been revoked",
    AuthFailure.REJECTED: "Gmail rejected the credential after a refresh",
}


class AuthError(RagError):
    """Raised when no usable Gmail credential is available."""

    def __init__(self, reason: AuthFailure, detail: str | None = None) -> None:
        message = _AUTH_MESSAGES[reason]
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.reason = reason


class ProviderError(RagError):
    """Raised when the Gmail API answers with a non-2xx status or is unreachable.

    ``status`` is ``None`` for transport failures (DNS, timeouts, resets).
    """

    def __init__(self, status: int | None, detail: str) -> None:
        prefix = f"Gmail API error: {status}" if status is not None else "Gmail API unreachable"
        super().__init__(f"{prefix} {detail}".strip())
        self.status = status


class ModelError(RagError):
    """Raised when the generative-model call itself fails (network, quota, auth)."""


class MalformedOutputError(RagError):
    """Raised internally when model output is not the expected structure.

    Always recovered by the synthesizer's repair chain; never reaches callers.
    """
