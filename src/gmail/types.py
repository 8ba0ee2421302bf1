"""Data types shared across the Gmail client, retriever and extractor."""

from __future__ import annotations

from dataclasses import dataclass, field

#: Web UI link template; ``#all`` finds the message regardless of its folder.
MESSAGE_LINK_TEMPLATE = "https://mail.google.com/mail/u/0/#all/{id}"


def message_link(message_id: str) -> str:
    """Return the Gmail web link for a message id."""
    return MESSAGE_LINK_TEMPLATE.format(id=message_id)


@dataclass(frozen=True)
class MessageRef:
    """A search hit: just enough to fetch the full message later."""

    id: str
    thread_id: str = ""


@dataclass(frozen=True)
class MessagePart:
    """One node of a Gmail MIME payload tree.

    Leaf parts carry ``data`` (base64url, as Gmail returns it); multipart
    containers carry ``parts`` instead.  Attachments have neither: Gmail only
    returns an attachment id for those, which this pipeline never follows.
    """

    mime_type: str
    data: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    parts: list[MessagePart] = field(default_factory=list)

    def header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default


@dataclass(frozen=True)
class RawMessage:
    """A full message as returned by ``messages.get?format=full``."""

    id: str
    thread_id: str
    payload: MessagePart

    def header(self, name: str, default: str = "") -> str:
        return self.payload.header(name, default)


@dataclass(frozen=True)
class ExtractedDocument:
    """Plain-text view of one RawMessage, ready to be used as grounding context."""

    id: str
    subject: str
    sender: str
    date: str
    body: str
    link: str


@dataclass(frozen=True)
class SkippedMessage:
    """A search hit whose fetch failed and was left out of the batch."""

    message_id: str
    reason: str


@dataclass(frozen=True)
class FetchOutcome:
    """Result of fetching a batch: the messages that arrived plus the ones skipped."""

    messages: list[RawMessage] = field(default_factory=list)
    skipped: list[SkippedMessage] = field(default_factory=list)
