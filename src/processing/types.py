"""Types for the question-answering pipeline."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class ScopeMode(str, Enum):
    """How the folders to search are chosen."""

    MANUAL = "manual"
    AI_ASSISTED = "ai_assisted"


@dataclass(frozen=True)
class FolderScope:
    """Folders a search is restricted to.

    Manual scopes list the folders explicitly and must not be empty.  An
    AI-assisted scope is empty up front; the folders are read back from the
    query the model writes.
    """

    mode: ScopeMode
    folders: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.mode == ScopeMode.MANUAL and not self.folders:
            raise ValueError("Select at least one folder/label or use AI-assisted mode")

    @classmethod
    def manual(cls, folders: list[str] | tuple[str, ...]) -> FolderScope:
        return cls(ScopeMode.MANUAL, tuple(folders))

    @classmethod
    def ai_assisted(cls) -> FolderScope:
        return cls(ScopeMode.AI_ASSISTED)

    @property
    def is_ai_assisted(self) -> bool:
        return self.mode == ScopeMode.AI_ASSISTED


@dataclass(frozen=True)
class SearchRequest:
    """One question from the caller."""

    question: str
    scope: FolderScope
    model_id: str
    model_key: str | None = None


# ── Structured answer ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SourceEmail:
    """A cited email: its subject and Gmail web link."""

    subject: str
    link: str


@dataclass(frozen=True)
class SynthesizedAnswer:
    """The JSON-shaped answer handed to the presentation layer."""

    answer: str
    source_folders: list[str] = field(default_factory=list)
    source_emails: list[SourceEmail] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)
