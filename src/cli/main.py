"""CLI entry point for the Gmail question-answering assistant."""

import logging

import click
from dotenv import load_dotenv

from src.config import Settings

logger = logging.getLogger(__name__)


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Ask questions about your Gmail mailbox and get cited answers."""
    load_dotenv()
    settings = Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    ctx.obj = settings


# Import and register commands after cli is defined to avoid circular imports.
from src.cli.commands import ask, labels, login, logout, whoami  # noqa: E402

cli.add_command(ask)
cli.add_command(labels)
cli.add_command(login)
cli.add_command(logout)
cli.add_command(whoami)
