"""Tests for QueryRewriter and its query-building helpers."""

import re
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.errors import ModelError
from src.processing.prompts import build_fragment_prompt, build_full_query_prompt
from src.processing.rewriter import (
    QueryRewriter,
    assemble_query,
    build_folder_query,
    clean_query_response,
)
from src.processing.types import FolderScope


def _model(reply: str) -> MagicMock:
    model = MagicMock()
    model.complete = AsyncMock(return_value=reply)
    return model


# ── clean_query_response ───────────────────────────────────────────────────────


class TestCleanQueryResponse:
    def test_plain_query_untouched(self) -> None:
        assert clean_query_response("  from:acme invoice ") == "from:acme invoice"

    def test_strips_echoed_scaffolding(self) -> None:
        raw = "<output><query>(from:acme OR Acme*) invoice</query></output>"
        assert clean_query_response(raw) == "(from:acme OR Acme*) invoice"

    def test_strips_unknown_tags_too(self) -> None:
        raw = '<correct_query importance="high">subject:report</correct_query><foo/>'
        cleaned = clean_query_response(raw)
        assert cleaned == "subject:report"
        assert re.search(r"<[^>]*>", cleaned) is None

    def test_strips_code_fence_and_label(self) -> None:
        assert clean_query_response("```\nOutput: category:promotions\n```") == "category:promotions"

    def test_empty_reply(self) -> None:
        assert clean_query_response("<query></query>") == ""


# ── build_folder_query / assemble_query ────────────────────────────────────────


class TestBuildFolderQuery:
    def test_standard_folders(self) -> None:
        assert build_folder_query(["INBOX", "SENT"]) == "in:inbox OR in:sent"

    def test_custom_label_takes_precedence(self) -> None:
        assert build_folder_query(["Work", "INBOX", "SENT"]) == "label:Work"

    def test_several_custom_labels(self) -> None:
        assert build_folder_query(["Clients/Acme", "Tax Docs"]) == "label:Clients-Acme OR label:Tax-Docs"

    def test_all_mail_adds_no_operator(self) -> None:
        assert build_folder_query(["ALL"]) == ""
        assert build_folder_query(["ALL", "DRAFT"]) == "in:draft"

    def test_standard_folder_names_are_case_insensitive(self) -> None:
        assert build_folder_query(["inbox", "Sent"]) == "in:inbox OR in:sent"
        assert build_folder_query(["all"]) == ""
        assert build_folder_query(["inbox", "Work"]) == "label:Work"


class TestAssembleQuery:
    def test_folders_and_fragment(self) -> None:
        assert assemble_query("in:inbox", "from:acme") == "(in:inbox) (from:acme)"

    def test_only_fragment(self) -> None:
        assert assemble_query("", "from:acme") == "from:acme"

    def test_only_folders(self) -> None:
        assert assemble_query("in:inbox OR in:sent", "") == "(in:inbox OR in:sent)"

    def test_neither(self) -> None:
        assert assemble_query("", "") == ""


# ── Prompts ────────────────────────────────────────────────────────────────────


class TestQueryPrompts:
    def test_fragment_prompt_forbids_folder_operators(self) -> None:
        prompt = build_fragment_prompt("latest invoice from Acme", today=date(2024, 6, 3))
        assert "DO NOT include in:inbox, in:sent, in:draft or label:" in prompt
        assert "<current_date>2024-06-03</current_date>" in prompt
        assert "latest invoice from Acme" in prompt

    def test_latest_is_never_date_filtered(self) -> None:
        for prompt in (build_fragment_prompt("q"), build_full_query_prompt("q")):
            assert "NEVER add a date filter" in prompt

    def test_full_prompt_lets_model_pick_folders(self) -> None:
        assert "label:<name>" in build_full_query_prompt("what did my lawyer send?")


# ── QueryRewriter ──────────────────────────────────────────────────────────────


class TestQueryRewriter:
    async def test_manual_scope_wraps_fragment(self) -> None:
        model = _model("<output>(from:acme OR Acme*) invoice</output>")
        query = await QueryRewriter(model).rewrite(
            "latest invoice from Acme", FolderScope.manual(["INBOX"]), "claude-haiku-4-5"
        )
        assert query == "(in:inbox) ((from:acme OR Acme*) invoice)"
        prompt, model_id = model.complete.await_args.args
        assert "FRAGMENTS" in prompt
        assert model_id == "claude-haiku-4-5"

    async def test_manual_scope_with_custom_label(self) -> None:
        query = await QueryRewriter(_model("report")).rewrite(
            "q", FolderScope.manual(["Work", "INBOX"]), "m"
        )
        assert query == "(label:Work) (report)"

    async def test_ai_scope_returns_cleaned_model_query(self) -> None:
        model = _model("```\nin:sent to:lawyer\n```")
        query = await QueryRewriter(model).rewrite("what did I send my lawyer?", FolderScope.ai_assisted(), "m")
        assert query == "in:sent to:lawyer"
        prompt = model.complete.await_args.args[0]
        assert "complete Gmail query" in prompt

    async def test_model_error_propagates(self) -> None:
        model = MagicMock()
        model.complete = AsyncMock(side_effect=ModelError("Error during model call: quota"))
        with pytest.raises(ModelError):
            await QueryRewriter(model).rewrite("q", FolderScope.manual(["INBOX"]), "m")
