"""Folder scope inferred from a model-written Gmail query."""

import re

ALL_MAIL = "All Mail"

_FOLDER_OPERATORS: list[tuple[str, str]] = [
    ("in:inbox", "INBOX"),
    ("in:sent", "SENT"),
    ("in:draft", "DRAFT"),
]
_LABEL_RE = re.compile(r"label:([A-Za-z0-9_-]+)", re.IGNORECASE)


def infer_folders(query: str) -> list[str]:
    """Return the folders a generated query searches.

    Standard folders come first (INBOX, SENT, DRAFT), then labels in the
    order they appear.

    This is a text heuristic, not a query parser: an operator-looking token
    inside a quoted phrase (``"see label:work"``) is counted too.  A query
    with no folder operators searches the whole mailbox and reports
    ``["All Mail"]``.
    """
    lowered = query.lower()
    folders = [name for operator, name in _FOLDER_OPERATORS if operator in lowered]
    for match in _LABEL_RE.finditer(query):
        label = match.group(1)
        if label not in folders:
            folders.append(label)
    return folders or [ALL_MAIL]
