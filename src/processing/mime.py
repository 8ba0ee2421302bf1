"""Turn Gmail MIME payload trees into plain text grounding documents."""

import base64
import binascii
import logging
import re

from src.gmail.types import ExtractedDocument, MessagePart, RawMessage, message_link

logger = logging.getLogger(__name__)

#: Maximum characters of body handed to the model per email.  Applied to
#: decoded text, after HTML conversion.
BODY_CHAR_LIMIT = 40_000

_CHARSET_RE = re.compile(r"charset\s*=\s*\"?([\w.:-]+)", re.IGNORECASE)

# ── HTML → text ────────────────────────────────────────────────────────────────

_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_BLOCK_RE = re.compile(r"</?(?:div|p|br|h[1-6]|li|tr)\b[^>]*>", re.IGNORECASE)
_ANCHOR_RE = re.compile(r"<a\b[^>]*href=\"([^\"]*)\"[^>]*>(.*?)</a>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_BLANK_LINES_RE = re.compile(r"\n\s*\n")

# Order matters: &amp; first, as the browser-era converter did.
_ENTITIES: list[tuple[str, str]] = [
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&nbsp;", " "),
]


def html_to_text(html: str) -> str:
    """Convert an HTML body to readable text without an HTML parser.

    Block-level tags become line breaks and links keep their target as
    ``text (href)`` so the model can cite them.
    """
    text = _SCRIPT_RE.sub("", html)
    text = _STYLE_RE.sub("", text)
    text = _BLOCK_RE.sub("\n", text)
    text = _ANCHOR_RE.sub(r"\2 (\1)", text)
    text = _TAG_RE.sub("", text)
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


# ── Decoding ───────────────────────────────────────────────────────────────────


def decode_base64url(data: str, charset: str = "utf-8") -> str:
    """Decode Gmail's base64url body data into text.

    Returns ``""`` when the data is not valid base64; undecodable bytes are
    replaced rather than raising.
    """
    standard = data.replace("-", "+").replace("_", "/")
    standard += "=" * (-len(standard) % 4)
    try:
        raw = base64.b64decode(standard)
    except (binascii.Error, ValueError) as exc:
        logger.debug("Undecodable body part (%d chars): %s", len(data), exc)
        return ""
    try:
        return raw.decode(charset, errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")


def _part_charset(part: MessagePart) -> str:
    match = _CHARSET_RE.search(part.header("Content-Type"))
    return match.group(1) if match else "utf-8"


def _collect(parts: list[MessagePart]) -> tuple[str, str]:
    """Walk child parts, returning the (plain, html) buffers.

    Nested multiparts are merged per buffer so a text/plain sibling deep in the
    tree never gets mixed into the HTML buffer or vice versa.
    """
    plain = ""
    html = ""
    for part in parts:
        mime_type = part.mime_type.lower()
        if mime_type == "text/plain" and part.data:
            plain += decode_base64url(part.data, _part_charset(part))
        elif mime_type == "text/html" and part.data:
            html += decode_base64url(part.data, _part_charset(part))
        elif part.parts:
            nested_plain, nested_html = _collect(part.parts)
            plain += nested_plain
            html += nested_html
    return plain, html


def extract_body(payload: MessagePart) -> str:
    """Return the plain-text body of a payload tree, capped at BODY_CHAR_LIMIT.

    Plain text always wins over HTML when both are present: it carries no
    markup noise.
    """
    if payload.data:
        text = decode_base64url(payload.data, _part_charset(payload))
        if payload.mime_type.lower() == "text/html":
            text = html_to_text(text)
        elif not text.strip():
            text = ""
    elif payload.parts:
        plain, html = _collect(payload.parts)
        if plain.strip():
            text = plain
        elif html.strip():
            text = html_to_text(html)
        else:
            text = ""
    else:
        text = ""
    return text[:BODY_CHAR_LIMIT]


def extract_document(message: RawMessage) -> ExtractedDocument:
    """Derive the grounding document for one message."""
    return ExtractedDocument(
        id=message.id,
        subject=message.header("Subject") or "No Subject",
        sender=message.header("From") or "Unknown Sender",
        date=message.header("Date") or "Unknown Date",
        body=extract_body(message.payload),
        link=message_link(message.id),
    )
