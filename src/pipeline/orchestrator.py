"""One question → one grounded answer: the retrieval-augmented pipeline."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from src.auth.credentials import CredentialStore
from src.errors import AuthError, AuthFailure, RagError
from src.gmail.retriever import MailRetriever
from src.processing.folders import infer_folders
from src.processing.mime import extract_document
from src.processing.model import ModelClient
from src.processing.rewriter import QueryRewriter
from src.processing.synthesizer import AnswerSynthesizer
from src.processing.types import FolderScope, SearchRequest, SynthesizedAnswer

logger = logging.getLogger(__name__)

NO_RESULTS_ANSWER = (
    "I couldn't find any relevant emails in the specified folders to answer your question."
)

#: Builds a model client for a per-request API key (None → environment key).
ModelFactory = Callable[[str | None], ModelClient]


class PipelineState(str, Enum):
    IDLE = "idle"
    CHECKING_AUTH = "checking_auth"
    REWRITING = "rewriting"
    SEARCHING = "searching"
    FETCHING = "fetching"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RagResponse:
    """What the presentation layer receives: a result JSON string or one error message."""

    success: bool
    result: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "result": self.result}
        return {"success": False, "error": self.error}


def parse_request(payload: dict[str, Any], default_model: str) -> SearchRequest:
    """Validate a caller payload into a SearchRequest.

    Accepts ``folders`` (or ``labels``) plus ``aiAssistedFolders``, the shape
    the presentation layer sends.

    Raises:
        ValueError: on an empty question or an empty manual folder selection.
    """
    question = str(payload.get("question") or payload.get("query") or "").strip()
    if not question:
        raise ValueError("Please enter a question")
    explicit = payload.get("folderScope")
    if isinstance(explicit, FolderScope):
        scope = explicit
    elif payload.get("aiAssistedFolders"):
        scope = FolderScope.ai_assisted()
    else:
        folders = payload.get("folders") or payload.get("labels") or []
        scope = FolderScope.manual([str(f) for f in folders])
    return SearchRequest(
        question=question,
        scope=scope,
        model_id=str(payload.get("modelId") or default_model),
        model_key=payload.get("modelKey") or None,
    )


class RagOrchestrator:
    """Sequences auth check, rewrite, search, fetch and synthesis for one question.

    Failure contract: the caller gets either a structurally valid answer or a
    single error message.  Per-message fetch failures are absorbed by the
    retriever; malformed model output is repaired by the synthesizer; auth,
    provider and model-call failures end the cycle.

    Usage::

        orchestrator = RagOrchestrator(store, retriever, model_factory=ModelClient)
        response = await orchestrator.handle({"question": "...", "folders": ["INBOX"]})
    """

    def __init__(
        self,
        credentials: CredentialStore,
        retriever: MailRetriever,
        model_factory: ModelFactory = ModelClient,
        default_model: str = "claude-haiku-4-5-20251001",
        language: str = "English",
    ) -> None:
        self._credentials = credentials
        self._retriever = retriever
        self._model_factory = model_factory
        self._default_model = default_model
        self._language = language
        self.state = PipelineState.IDLE
        self.last_result: str | None = None
        self.skipped_count = 0

    async def handle(
        self, payload: dict[str, Any], cancel: asyncio.Event | None = None
    ) -> RagResponse | None:
        """Request/response surface.  Never raises.

        Returns ``None`` when ``cancel`` was set before the cycle finished; the
        cycle itself is not interrupted, only its result is withheld.
        """
        try:
            request = parse_request(payload, self._default_model)
        except ValueError as exc:
            return RagResponse(success=False, error=str(exc))

        try:
            answer = await self.run(request)
            response = RagResponse(success=True, result=answer.to_json())
            self.last_result = response.result
        except RagError as exc:
            logger.error("Pipeline failed in %s: %s", self.state.value, exc)
            response = RagResponse(success=False, error=str(exc))

        if cancel is not None and cancel.is_set():
            logger.info("Result discarded: request was cancelled")
            return None
        return response

    async def run(self, request: SearchRequest) -> SynthesizedAnswer:
        """Run one cycle.

        Raises:
            AuthError: if the stored credential is missing or invalid.
            RagError: if rewriting, searching or synthesis fails.
        """
        self.skipped_count = 0
        try:
            answer = await self._run(request)
        except RagError:
            self._enter(PipelineState.FAILED)
            raise
        self._enter(PipelineState.DONE)
        return answer

    async def _run(self, request: SearchRequest) -> SynthesizedAnswer:
        self._enter(PipelineState.CHECKING_AUTH)
        if not await self._credentials.check_valid():
            raise AuthError(AuthFailure.NOT_AUTHENTICATED)

        model = self._model_factory(request.model_key)

        self._enter(PipelineState.REWRITING)
        query = await QueryRewriter(model).rewrite(
            request.question, request.scope, request.model_id
        )
        if request.scope.is_ai_assisted:
            folders = infer_folders(query)
        else:
            folders = list(request.scope.folders)

        self._enter(PipelineState.SEARCHING)
        refs = await self._retriever.search(query)
        if not refs:
            logger.info("No emails matched %r; skipping synthesis", query)
            return SynthesizedAnswer(answer=NO_RESULTS_ANSWER, source_folders=folders)

        self._enter(PipelineState.FETCHING)
        outcome = await self._retriever.fetch_all(refs)
        self.skipped_count = len(outcome.skipped)
        documents = [extract_document(message) for message in outcome.messages]

        self._enter(PipelineState.SYNTHESIZING)
        answer = await AnswerSynthesizer(model, self._language).synthesize(
            request.question, folders, documents, request.model_id
        )
        if request.scope.is_ai_assisted:
            answer = SynthesizedAnswer(
                answer=answer.answer,
                source_folders=folders,
                source_emails=answer.source_emails,
            )
        return answer

    def _enter(self, state: PipelineState) -> None:
        logger.debug("Pipeline %s → %s", self.state.value, state.value)
        self.state = state
