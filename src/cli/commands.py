"""CLI command implementations: each opens a RagSession and dispatches one call."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine
from typing import Any

import click
from rich import box
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from src.config import Settings
from src.errors import RagError
from src.pipeline.session import rag_session

logger = logging.getLogger(__name__)
console = Console(width=200)


def _run(coro: Coroutine[Any, Any, bool]) -> None:
    """Run an async command body; a False result exits with status 1."""
    if not asyncio.run(coro):
        raise SystemExit(1)


def _fail(message: str) -> bool:
    console.print(f"[red]{escape(message)}[/red]")
    return False


# ── login / logout ───────────────────────────────────────────────────────────────


@click.command()
@click.pass_obj
def login(settings: Settings) -> None:
    """Connect to Gmail (opens the browser consent screen if needed)."""
    _run(_login_async(settings))


async def _login_async(settings: Settings) -> bool:
    async with rag_session(settings) as session:
        if await session.credentials.check_valid():
            console.print("[green]Already connected to Gmail.[/green]")
            return True
        try:
            await session.credentials.authenticate(interactive=True)
        except RagError as exc:
            return _fail(f"Login failed: {exc}")
    console.print("[green]Connected to Gmail.[/green]")
    return True


@click.command()
@click.pass_obj
def logout(settings: Settings) -> None:
    """Revoke the Gmail token and forget every cached credential."""
    _run(_logout_async(settings))


async def _logout_async(settings: Settings) -> bool:
    async with rag_session(settings) as session:
        await session.credentials.revoke()
    console.print("Signed out.")
    return True


# ── whoami / labels ──────────────────────────────────────────────────────────────


@click.command()
@click.pass_obj
def whoami(settings: Settings) -> None:
    """Show the connected mailbox."""
    _run(_whoami_async(settings))


async def _whoami_async(settings: Settings) -> bool:
    async with rag_session(settings) as session:
        try:
            profile = await session.gmail.get_profile()
        except RagError as exc:
            return _fail(str(exc))
    console.print(f"[bold]{profile.get('emailAddress', '?')}[/bold]")
    console.print(
        f"  {profile.get('messagesTotal', 0)} messages, "
        f"{profile.get('threadsTotal', 0)} threads"
    )
    return True


@click.command()
@click.pass_obj
def labels(settings: Settings) -> None:
    """List every Gmail label usable with `ask --folder`."""
    _run(_labels_async(settings))


async def _labels_async(settings: Settings) -> bool:
    async with rag_session(settings) as session:
        try:
            all_labels = await session.gmail.list_labels()
        except RagError as exc:
            return _fail(f"Error loading labels: {exc}")

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Name", max_width=60)
    table.add_column("Type", width=8)
    for label in all_labels:
        table.add_row(str(label.get("name", "")), str(label.get("type", "")).lower())
    console.print(table)
    return True


# ── ask ──────────────────────────────────────────────────────────────────────────


@click.command()
@click.argument("question")
@click.option(
    "--folder",
    "-f",
    "folders",
    multiple=True,
    help="Folder or label to search (repeatable). Defaults to INBOX.",
)
@click.option("--ai-folders", is_flag=True, help="Let the model pick the folders.")
@click.option("--model", "model_id", default=None, help="Model ID (defaults to RAG_MODEL).")
@click.pass_obj
def ask(
    settings: Settings,
    question: str,
    folders: tuple[str, ...],
    ai_folders: bool,
    model_id: str | None,
) -> None:
    """Answer a question from your emails, with sources."""
    payload: dict[str, Any] = {
        "question": question,
        "folders": list(folders) or ["INBOX"],
        "aiAssistedFolders": ai_folders,
        "modelId": model_id or settings.model_id,
    }
    _run(_ask_async(settings, payload))


async def _ask_async(settings: Settings, payload: dict[str, Any]) -> bool:
    async with rag_session(settings) as session:
        with console.status("Searching your emails..."):
            response = await session.orchestrator.handle(payload)

    if response is None:
        return _fail("Search cancelled")
    if not response.success or response.result is None:
        return _fail(f"Search error: {response.error}")

    result = json.loads(response.result)
    folders = ", ".join(result.get("source_folders", [])) or "-"
    console.print(
        Panel(
            Markdown(result.get("answer", "")),
            title=f"[bold]{escape(payload['question'])}[/bold]",
            subtitle=f"[dim]Folders: {folders}[/dim]",
            border_style="blue",
        )
    )

    sources = result.get("source_emails", [])
    if sources:
        table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
        table.add_column("#", style="dim", width=3)
        table.add_column("Subject", max_width=60)
        table.add_column("Link")
        for i, source in enumerate(sources, start=1):
            table.add_row(str(i), source.get("subject", ""), source.get("link", ""))
        console.print(table)
    return True
