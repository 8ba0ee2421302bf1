"""Tests for answer synthesis and the structured-output repair chain."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.errors import MalformedOutputError, ModelError
from src.gmail.types import ExtractedDocument, message_link
from src.processing.prompts import build_synthesis_prompt
from src.processing.synthesizer import (
    FALLBACK_ANSWER,
    AnswerSynthesizer,
    first_balanced_object,
    ground_sources,
    repair_answer,
)
from src.processing.types import SourceEmail, SynthesizedAnswer


def _doc(message_id: str, subject: str = "Invoice #42", body: str = "Amount due: 120 EUR") -> ExtractedDocument:
    return ExtractedDocument(
        id=message_id,
        subject=subject,
        sender="billing@acme.com",
        date="Mon, 3 Jun 2024 09:00:00 +0000",
        body=body,
        link=message_link(message_id),
    )


def _model(reply: str) -> MagicMock:
    model = MagicMock()
    model.complete = AsyncMock(return_value=reply)
    return model


# ── first_balanced_object ──────────────────────────────────────────────────────


class TestFirstBalancedObject:
    def test_nested_object(self) -> None:
        text = 'prefix {"a": {"b": 1}} suffix {"c": 2}'
        assert first_balanced_object(text) == '{"a": {"b": 1}}'

    def test_braces_inside_strings_ignored(self) -> None:
        text = 'x {"answer": "use } and { freely \\" ok"} y'
        assert json.loads(first_balanced_object(text))["answer"] == 'use } and { freely " ok'

    def test_unbalanced_raises(self) -> None:
        with pytest.raises(MalformedOutputError):
            first_balanced_object('{"answer": "never closed"')

    def test_no_object_raises(self) -> None:
        with pytest.raises(MalformedOutputError):
            first_balanced_object("no json here")


# ── repair_answer ──────────────────────────────────────────────────────────────


class TestRepairAnswer:
    def test_clean_json(self) -> None:
        raw = json.dumps(
            {
                "answer": "**120 EUR**",
                "source_folders": ["INBOX"],
                "source_emails": [{"subject": "Invoice", "link": "https://x/1"}],
            }
        )
        result = repair_answer(raw)
        assert result.answer == "**120 EUR**"
        assert result.source_folders == ["INBOX"]
        assert result.source_emails == [SourceEmail("Invoice", "https://x/1")]

    def test_fenced_json_wrapped_in_chatter(self) -> None:
        raw = 'Sure! ```json\n{"answer":"A","source_folders":[],"source_emails":[]}\n``` thanks'
        assert repair_answer(raw) == SynthesizedAnswer(answer="A")

    def test_missing_lists_default_to_empty(self) -> None:
        result = repair_answer('{"answer": "Only text"}')
        assert result.source_folders == []
        assert result.source_emails == []

    def test_unparseable_output_falls_back(self) -> None:
        result = repair_answer("I could not find anything, sorry.")
        assert result == SynthesizedAnswer(answer=FALLBACK_ANSWER)
        assert result.answer.startswith("Error:")

    def test_object_without_answer_falls_back(self) -> None:
        assert repair_answer('{"reply": "wrong key"}').answer == FALLBACK_ANSWER

    def test_empty_output_falls_back(self) -> None:
        assert repair_answer("").answer == FALLBACK_ANSWER


# ── ground_sources ─────────────────────────────────────────────────────────────


class TestGroundSources:
    def test_keeps_only_document_links(self) -> None:
        docs = [_doc("a", "First"), _doc("b", "Second")]
        answer = SynthesizedAnswer(
            answer="x",
            source_folders=["INBOX"],
            source_emails=[
                SourceEmail("renamed by model", message_link("b")),
                SourceEmail("Invented", "https://mail.google.com/mail/u/0/#all/zzz"),
                SourceEmail("dup", message_link("b")),
            ],
        )
        grounded = ground_sources(answer, docs)
        assert grounded.source_emails == [SourceEmail("Second", message_link("b"))]
        assert grounded.source_folders == ["INBOX"]
        assert grounded.answer == "x"


# ── Prompt ─────────────────────────────────────────────────────────────────────


class TestSynthesisPrompt:
    def test_contains_documents_and_references(self) -> None:
        docs = [_doc("18f0a")]
        prompt = build_synthesis_prompt("latest invoice from Acme", ["INBOX"], docs, language="Italian")
        assert "Answer in Italian" in prompt
        assert "Amount due: 120 EUR" in prompt
        assert message_link("18f0a") in prompt
        assert '<analyzed_folders>["INBOX"]</analyzed_folders>' in prompt
        assert "SPECIFIC" in prompt and "BROAD" in prompt


# ── AnswerSynthesizer ──────────────────────────────────────────────────────────


class TestAnswerSynthesizer:
    async def test_returns_grounded_answer(self) -> None:
        docs = [_doc("m1"), _doc("m2", "Older invoice")]
        reply = json.dumps(
            {
                "answer": "The latest invoice is **#42** for 120 EUR.",
                "source_folders": ["INBOX"],
                "source_emails": [{"subject": "Invoice #42", "link": message_link("m1")}],
            }
        )
        model = _model(f"```json\n{reply}\n```")
        answer = await AnswerSynthesizer(model).synthesize("latest invoice", ["INBOX"], docs, "m")

        assert answer.answer.startswith("The latest invoice")
        assert [s.link for s in answer.source_emails] == [message_link("m1")]
        assert model.complete.await_args.args[1] == "m"

    async def test_garbage_reply_gives_fallback(self) -> None:
        answer = await AnswerSynthesizer(_model("<<<>>>")).synthesize("q", ["INBOX"], [_doc("m1")], "m")
        assert answer.answer == FALLBACK_ANSWER

    async def test_model_error_propagates(self) -> None:
        model = MagicMock()
        model.complete = AsyncMock(side_effect=ModelError("Error during model call: timeout"))
        with pytest.raises(ModelError):
            await AnswerSynthesizer(model).synthesize("q", ["INBOX"], [_doc("m1")], "m")
