"""Grounded answer synthesis and repair of malformed structured output."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from typing import Any

from src.errors import MalformedOutputError
from src.gmail.types import ExtractedDocument
from src.processing.model import ModelClient
from src.processing.prompts import build_synthesis_prompt
from src.processing.types import SourceEmail, SynthesizedAnswer

logger = logging.getLogger(__name__)

FALLBACK_ANSWER = "Error: The AI returned an invalid response. Please try again."

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


# ── Repair chain ───────────────────────────────────────────────────────────────


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def first_balanced_object(text: str) -> str:
    """Return the first balanced top-level ``{...}`` substring.

    Braces inside JSON strings (including escaped quotes) are ignored.

    Raises:
        MalformedOutputError: if no balanced object is present.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        start = text.find("{", start + 1)
    raise MalformedOutputError("no balanced JSON object in model output")


def _load_object(text: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedOutputError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("answer"), str):
        raise MalformedOutputError("JSON is not an object with a string 'answer'")
    return data


def _parse_whole(text: str) -> dict[str, Any]:
    return _load_object(text)


def _parse_embedded(text: str) -> dict[str, Any]:
    return _load_object(first_balanced_object(text))


#: Tried in order; each raises MalformedOutputError when it cannot help.
_PARSERS: list[Callable[[str], dict[str, Any]]] = [_parse_whole, _parse_embedded]


def _to_answer(data: dict[str, Any]) -> SynthesizedAnswer:
    folders = data.get("source_folders")
    emails = data.get("source_emails")
    return SynthesizedAnswer(
        answer=data["answer"],
        source_folders=[str(f) for f in folders] if isinstance(folders, list) else [],
        source_emails=[
            SourceEmail(subject=str(e.get("subject", "")), link=str(e.get("link", "")))
            for e in (emails if isinstance(emails, list) else [])
            if isinstance(e, dict)
        ],
    )


def repair_answer(raw: str) -> SynthesizedAnswer:
    """Turn raw model text into a SynthesizedAnswer.  Never raises.

    Strips code fences, then tries each parser in ``_PARSERS``; if all fail
    the fixed error-shaped answer is returned.
    """
    text = strip_code_fences(raw)
    for parser in _PARSERS:
        try:
            return _to_answer(parser(text))
        except MalformedOutputError as exc:
            logger.debug("%s could not parse model output: %s", parser.__name__, exc)
    logger.warning("Model output could not be repaired; using fallback answer")
    return SynthesizedAnswer(answer=FALLBACK_ANSWER)


def ground_sources(
    answer: SynthesizedAnswer, documents: list[ExtractedDocument]
) -> SynthesizedAnswer:
    """Keep only cited emails that are documents from this cycle.

    Links the model invented or altered are dropped; subjects come from the
    document itself.
    """
    by_link = {doc.link: doc for doc in documents}
    grounded: list[SourceEmail] = []
    seen: set[str] = set()
    for source in answer.source_emails:
        doc = by_link.get(source.link)
        if doc is None:
            logger.debug("Dropping ungrounded source link %r", source.link)
            continue
        if doc.link in seen:
            continue
        seen.add(doc.link)
        grounded.append(SourceEmail(subject=doc.subject, link=doc.link))
    return SynthesizedAnswer(
        answer=answer.answer,
        source_folders=answer.source_folders,
        source_emails=grounded,
    )


# ── Synthesizer ────────────────────────────────────────────────────────────────


class AnswerSynthesizer:
    """Builds the grounding prompt, calls the model and repairs its output.

    Usage::

        synthesizer = AnswerSynthesizer(ModelClient())
        answer = await synthesizer.synthesize(question, ["INBOX"], documents, model_id)
    """

    def __init__(self, model: ModelClient, language: str = "English") -> None:
        self._model = model
        self._language = language

    async def synthesize(
        self,
        question: str,
        folders: list[str],
        documents: list[ExtractedDocument],
        model_id: str,
    ) -> SynthesizedAnswer:
        """Return a structurally valid answer.

        Raises:
            ModelError: if the model call itself fails.
        """
        prompt = build_synthesis_prompt(question, folders, documents, self._language)
        raw = await self._model.complete(prompt, model_id)
        return ground_sources(repair_answer(raw), documents)
