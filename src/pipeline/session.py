"""Wiring: build every pipeline collaborator from Settings for one process."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx

from src.auth.credentials import CredentialStore
from src.auth.identity import GoogleIdentityProvider
from src.config import Settings
from src.gmail.client import GmailClient
from src.gmail.retriever import MailRetriever
from src.pipeline.orchestrator import RagOrchestrator
from src.processing.model import ModelClient

logger = logging.getLogger(__name__)

_HTTP_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class RagSession:
    """Live collaborators sharing one HTTP connection pool."""

    credentials: CredentialStore
    gmail: GmailClient
    orchestrator: RagOrchestrator


@asynccontextmanager
async def rag_session(settings: Settings) -> AsyncIterator[RagSession]:
    """Async context manager that yields a ready-to-use RagSession.

    Example::

        async with rag_session(Settings.from_env()) as session:
            response = await session.orchestrator.handle({"question": "...", "folders": ["INBOX"]})
    """
    identity = GoogleIdentityProvider(settings.client_secrets_path, settings.token_cache_path)
    async with httpx.AsyncClient(timeout=_HTTP_TIMEOUT_SECONDS) as http:
        credentials = CredentialStore(identity, http, settings.credential_path)
        gmail = GmailClient(credentials, http)
        orchestrator = RagOrchestrator(
            credentials,
            MailRetriever(gmail),
            model_factory=lambda key: ModelClient(api_key=key or settings.anthropic_api_key),
            default_model=settings.model_id,
            language=settings.answer_language,
        )
        logger.debug("RAG session opened (model=%s)", settings.model_id)
        yield RagSession(credentials=credentials, gmail=gmail, orchestrator=orchestrator)
