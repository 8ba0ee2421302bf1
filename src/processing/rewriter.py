"""Natural-language question → Gmail search expression."""

import logging
import re

from src.processing.model import ModelClient
from src.processing.prompts import SCAFFOLD_TAGS, build_fragment_prompt, build_full_query_prompt
from src.processing.types import FolderScope

logger = logging.getLogger(__name__)

#: Folders that map to ``in:`` operators.  Anything else is a user label.
STANDARD_FOLDERS: frozenset[str] = frozenset({"INBOX", "SENT", "DRAFT", "ALL"})

_SCAFFOLD_RE = re.compile(
    r"</?(?:" + "|".join(re.escape(tag) for tag in SCAFFOLD_TAGS) + r")\b[^>]*>",
    re.IGNORECASE,
)
_ANY_TAG_RE = re.compile(r"<[^>]*>")
_FENCE_RE = re.compile(r"```[a-zA-Z]*")
_OUTPUT_LABEL_RE = re.compile(r"^(?:output|query)\s*:\s*", re.IGNORECASE)
_LABEL_SEPARATOR_RE = re.compile(r"[\s/]+")


def clean_query_response(text: str) -> str:
    """Strip prompt scaffolding the model may have echoed around its query.

    After cleaning the result never contains a ``<...>`` sequence.
    """
    cleaned = _SCAFFOLD_RE.sub("", text.strip())
    cleaned = _ANY_TAG_RE.sub("", cleaned)
    cleaned = _FENCE_RE.sub("", cleaned).strip().strip("`").strip()
    cleaned = _OUTPUT_LABEL_RE.sub("", cleaned)
    return cleaned.strip()


def _label_operand(name: str) -> str:
    """Gmail's operand form of a label name: spaces and slashes become hyphens."""
    return _LABEL_SEPARATOR_RE.sub("-", name.strip())


def build_folder_query(folders: list[str] | tuple[str, ...]) -> str:
    """Build the folder disjunction for a manual scope.

    A custom label is the more specific signal, so as soon as one is selected
    the standard folders are dropped.  ``ALL`` adds no restriction.
    """
    custom = [f for f in folders if f.upper() not in STANDARD_FOLDERS]
    if custom:
        return " OR ".join(f"label:{_label_operand(label)}" for label in custom)
    return " OR ".join(f"in:{f.lower()}" for f in folders if f.upper() != "ALL")


def assemble_query(folder_query: str, fragment: str) -> str:
    """Combine the folder disjunction and the model fragment (Gmail ANDs juxtaposed terms)."""
    if not folder_query:
        return fragment
    if not fragment:
        return f"({folder_query})"
    return f"({folder_query}) ({fragment})"


class QueryRewriter:
    """Asks the model for a Gmail search expression.

    In manual mode the model only writes search terms and the folder part is
    built locally; in AI-assisted mode it writes the whole query.  Model
    failures propagate as ModelError: there is no local fallback query.
    """

    def __init__(self, model: ModelClient) -> None:
        self._model = model

    async def rewrite(self, question: str, scope: FolderScope, model_id: str) -> str:
        if scope.is_ai_assisted:
            reply = await self._model.complete(build_full_query_prompt(question), model_id)
            query = clean_query_response(reply)
        else:
            reply = await self._model.complete(build_fragment_prompt(question), model_id)
            query = assemble_query(build_folder_query(scope.folders), clean_query_response(reply))
        logger.info("Rewrote %r → %r", question, query)
        return query
