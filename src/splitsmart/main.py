import asyncio
import mimetypes
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path

import typer
from dotenv import load_dotenv
from loguru import logger

from splitsmart.allocation import allocate_bill
from splitsmart.config import Settings
from splitsmart.integrations.anthropic_assistant import (
    SUPPORTED_MIME_TYPES,
    AnthropicBillAssistant,
)
from splitsmart.models import Bill, check_bill_totals
from splitsmart.rendering import render_bill, render_breakdown, render_message
from splitsmart.session import ConversationSession, SessionState

load_dotenv()

app = typer.Typer(no_args_is_help=True)

QUIT_COMMANDS = {"quit", "exit"}


def configure_logging(level: str) -> None:
    """Send log records to stderr at the given level."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


@app.callback(invoke_without_command=True)
def callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show debug logging"
    ),
):
    """SplitSmart: split a restaurant bill by chatting about who had what."""
    settings = Settings()
    configure_logging("DEBUG" if verbose else settings.log_level)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def load_bill(path: Path) -> Bill:
    """Load a bill from a JSON file.

    Raises:
        OSError: If the file cannot be read
        pydantic.ValidationError: If the content is not a valid bill
    """
    return Bill.model_validate_json(path.read_text(encoding="utf-8"))


def echo_bill(bill: Bill, warnings: list[str]) -> None:
    typer.echo(render_bill(bill))
    typer.echo("")
    typer.echo(render_breakdown(allocate_bill(bill), bill.currency))
    for warning in warnings:
        typer.echo(f"Warning: {warning}", err=True)


async def read_user_line() -> str | None:
    """Prompt for the next message; None when input is exhausted."""

    def _prompt() -> str | None:
        typer.echo("You: ", nl=False)
        line = sys.stdin.readline()
        if not line:
            return None
        return line.rstrip("\r\n")

    return await asyncio.to_thread(_prompt)


async def run_chat(
    session: ConversationSession,
    image_bytes: bytes,
    mime_type: str,
    read_line: Callable[[], Awaitable[str | None]] = read_user_line,
) -> None:
    """Upload a receipt, then feed user lines to the session until they stop.

    Args:
        session: Fresh session to drive
        image_bytes: Receipt image
        mime_type: MIME type of the receipt image
        read_line: Coroutine returning the next user line, or None to stop
    """
    typer.echo("Analyzing receipt...")
    reply = await session.upload(image_bytes, mime_type)
    if session.state is not SessionState.READY:
        typer.echo(render_message(reply), err=True)
        return

    echo_bill(session.bill, session.warnings())  # type: ignore[arg-type]
    typer.echo("")
    typer.echo(render_message(reply))

    while True:
        line = await read_line()
        if line is None or line.strip().lower() in QUIT_COMMANDS:
            break
        if not line.strip():
            continue

        reply = await session.send_message(line)
        typer.echo(render_message(reply))
        typer.echo("")
        allocation = session.allocation()
        if allocation is not None and session.bill is not None:
            typer.echo(render_breakdown(allocation, session.bill.currency))


@app.command()
def chat(
    image: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Receipt image"
    ),
):
    """Analyze a receipt image and assign its items by chatting."""
    settings = Settings()

    mime_type, _ = mimetypes.guess_type(image.name)
    if mime_type not in SUPPORTED_MIME_TYPES:
        typer.echo(f"Error: unsupported image type: {mime_type}", err=True)
        raise typer.Exit(code=1)

    if not settings.anthropic_api_key:
        typer.echo("Error: ANTHROPIC_API_KEY not found.", err=True)
        raise typer.Exit(code=1)

    try:
        assistant = AnthropicBillAssistant(
            api_key=settings.anthropic_api_key,
            model=settings.model,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            prompts_dir=settings.prompts_dir,
        )
    except Exception as e:
        typer.echo(f"Failed to initialize assistant: {e}", err=True)
        raise typer.Exit(code=1) from e

    session = ConversationSession(
        assistant,
        timeout=settings.request_timeout,
        tolerance=settings.total_tolerance,
    )
    asyncio.run(run_chat(session, image.read_bytes(), mime_type))

    if session.state is SessionState.EMPTY:
        raise typer.Exit(code=1)


@app.command()
def split(
    bill_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Bill JSON file"
    ),
):
    """Print the per-person breakdown of a bill stored as JSON."""
    settings = Settings()

    try:
        bill = load_bill(bill_file)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: could not load bill from {bill_file}: {e}", err=True)
        raise typer.Exit(code=1) from e

    echo_bill(bill, check_bill_totals(bill, settings.total_tolerance))


def main():
    app()


if __name__ == "__main__":
    main()
