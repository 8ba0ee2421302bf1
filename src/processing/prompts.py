"""Prompt builders for query rewriting and answer synthesis."""

import json
from datetime import date

from src.gmail.types import ExtractedDocument

#: Tags used to structure the prompts below.  A model that echoes its
#: instructions back may emit any of these; the rewriter strips them all.
SCAFFOLD_TAGS: tuple[str, ...] = (
    "prompt",
    "role",
    "instructions",
    "rule",
    "output_format",
    "examples",
    "example",
    "context",
    "current_date",
    "user_request",
    "user_query",
    "task",
    "query",
    "output",
    "correct_query",
)

_OPERATOR_RULES = """\
        <rule id="operators" importance="critical">
            Prefer Gmail's indexed operators (from:, to:, subject:, category:, larger:, has:) over bare keywords.
        </rule>
        <rule id="entities" importance="critical">
            Match senders and recipients on both address and display name with the form (operator:entity OR Entity*).
            For "from Fineco" write (from:fineco OR Fineco*).
        </rule>
        <rule id="categories">
            Use category:promotions for offers and deals, category:updates for receipts and order confirmations,
            category:social for social networks, category:forums for mailing lists.
        </rule>
        <rule id="keywords">
            Only when no operator applies, expand a core keyword with at most 1-2 essential synonyms.
        </rule>
        <rule id="latest-vs-recent" importance="critical">
            For the "latest" or "last" email NEVER add a date filter: the newest match may be old and Gmail already sorts by date.
            Only for an explicitly recent window ("last week", "in the last few days", "recently") use newer_than:.
        </rule>
        <rule id="placeholders">
            Treat generic senders such as "my boss" as plain keywords.
        </rule>"""


def build_full_query_prompt(question: str, today: date | None = None) -> str:
    """Prompt asking for a complete Gmail query, folder operators included."""
    today = today or date.today()
    return f"""<prompt>
    <role>
        You convert natural-language questions into the most precise Gmail search query possible.
    </role>
    <instructions>
{_OPERATOR_RULES}
        <rule id="folders">
            Choose folder operators yourself: in:inbox, in:sent, in:draft or label:<name>. Combine them with OR when several apply.
        </rule>
    </instructions>
    <output_format>
        Return ONLY the raw Gmail search string. No tags, no formatting, no explanations.
    </output_format>
    <examples>
        <example>Input: "When did I receive the last communication from Fineco?" Output: in:inbox (from:fineco OR Fineco*)</example>
        <example>Input: "when did I buy dog food on Amazon?" Output: in:inbox (from:amazon OR Amazon*) category:updates "dog food"</example>
        <example>Input: "find all offers I received last month" Output: in:inbox category:promotions newer_than:30d</example>
        <example>Input: "recent emails with large attachments from my lawyer" Output: (in:inbox OR in:sent) lawyer larger:10M newer_than:15d</example>
    </examples>
    <context>
        <current_date>{today.isoformat()}</current_date>
        <user_request>{question}</user_request>
    </context>
    <task>
        Write the complete Gmail query for the user_request. Reply with the query string only and do not reproduce any tags from this prompt.
    </task>
</prompt>"""


def build_fragment_prompt(question: str, today: date | None = None) -> str:
    """Prompt asking only for search terms; folders are added locally."""
    today = today or date.today()
    return f"""<prompt>
    <role>
        You convert natural-language questions into precise Gmail search query FRAGMENTS.
    </role>
    <instructions>
        <rule id="no-folders" importance="critical">
            DO NOT include in:inbox, in:sent, in:draft or label: operators. Folders are chosen separately.
        </rule>
{_OPERATOR_RULES}
    </instructions>
    <output_format>
        Return ONLY the raw Gmail query fragment. No tags, no formatting, no explanations.
    </output_format>
    <examples>
        <example>Input: "last communication from Fineco" Output: (from:fineco OR Fineco*)</example>
        <example>Input: "dog food purchase on Amazon" Output: (from:amazon OR Amazon*) category:updates "dog food"</example>
        <example>Input: "recent offers I received" Output: category:promotions newer_than:15d</example>
    </examples>
    <context>
        <current_date>{today.isoformat()}</current_date>
        <user_request>{question}</user_request>
    </context>
    <task>
        Write the Gmail query fragment for the user_request. Reply with the fragment only and do not reproduce any tags from this prompt.
    </task>
</prompt>"""


# ── Synthesis ──────────────────────────────────────────────────────────────────


def _format_document(index: int, doc: ExtractedDocument) -> str:
    return (
        f'<email id="{doc.id}">\n'
        f"    <index>{index}</index>\n"
        f"    <subject>{doc.subject}</subject>\n"
        f"    <from>{doc.sender}</from>\n"
        f"    <date>{doc.date}</date>\n"
        f"    <body><![CDATA[{doc.body}]]></body>\n"
        f"</email>"
    )


def build_synthesis_prompt(
    question: str,
    folders: list[str],
    documents: list[ExtractedDocument],
    language: str = "English",
) -> str:
    """Grounding prompt for the final structured answer.

    Source links are computed here from document ids and handed to the model
    as references to copy, so it never has to invent a URL.
    """
    emails = "\n\n".join(_format_document(i, doc) for i, doc in enumerate(documents, start=1))
    references = json.dumps(
        [{"subject": doc.subject, "link": doc.link} for doc in documents],
        indent=2,
        ensure_ascii=False,
    )
    return f"""<prompt>
    <role>
        You are a personal assistant that answers questions about the user's mailbox. Answer in {language}.
    </role>
    <instructions>
        <rule id="scope" importance="critical">
            First decide whether the user_query is SPECIFIC (asks for one item: "the last email", "the attachment from Mario")
            or BROAD (asks for an overview: "what's new from my bank?", "summarize recent emails about Project X").
        </rule>
        <rule id="depth" importance="high">
            SPECIFIC: give a detailed answer about the single most relevant email, then at most one sentence noting that other related emails exist.
            BROAD: give short summaries of the 2-3 most relevant and recent emails. Do not list them all.
        </rule>
        <rule id="fidelity" importance="high">
            Use only information found in email_data. If the emails do not contain the answer, say so explicitly.
        </rule>
        <rule id="format">
            Use Markdown (bold, bullet points) inside the "answer" field.
        </rule>
        <rule id="json" importance="critical">
            Output exactly one valid JSON object and nothing else: start with {{ and end with }}. Escape quotes and newlines inside strings.
        </rule>
    </instructions>
    <output_format>
        {{"answer": "...", "source_folders": [], "source_emails": []}}
        - answer: the Markdown answer, addressed to the user.
        - source_folders: copy the list from analyzed_folders.
        - source_emails: the objects from source_references for the emails you actually used, unchanged.
    </output_format>
    <context>
        <user_query>{question}</user_query>
        <analyzed_folders>{json.dumps(folders, ensure_ascii=False)}</analyzed_folders>
        <email_data>
{emails}
        </email_data>
        <source_references>{references}</source_references>
    </context>
    <task>
        Decide the query scope, write the answer following the depth rule, then emit the JSON object. Start immediately with {{.
    </task>
</prompt>"""
