"""
Message Archive CLI — `message-archive` command.

Commands:
  message-archive run                 Run the archival job once (scheduler entry point)
  message-archive load QR_ID YYYY-MM  Print archived history of one month as JSON
  message-archive months QR_ID        List archived months of a quote request
"""

import asyncio
import json
import sys

import click

from message_archive.config import load_settings
from message_archive.errors import ArchiveError
from message_archive.logging import configure_logging
from message_archive.serialization import format_timestamp
from message_archive.service import ArchiveService


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, ensure_ascii=False, default=format_timestamp))


def _fail(message: str, code: str | None = None) -> None:
    payload = {"ok": False, "error": message}
    if code:
        payload["code"] = code
    _echo_json(payload)
    sys.exit(1)


async def _with_service(action):
    settings = load_settings()
    configure_logging(settings)
    service = ArchiveService.from_settings(settings)
    try:
        return await action(service)
    finally:
        await service.close()


def _run(action):
    try:
        return asyncio.run(_with_service(action))
    except ArchiveError as e:
        _fail(e.message, e.code)
    except Exception as e:
        _fail(str(e) or type(e).__name__)


@click.group()
def cli():
    """Archive expired quote-request messages to object storage."""


@cli.command()
def run():
    """Archive expired messages and purge expired notifications."""
    result = _run(lambda s: s.run_archival(triggered_by="cli"))
    _echo_json({"ok": True, **result.as_dict()})


@cli.command()
@click.argument("quote_request_id")
@click.argument("year_month")
def load(quote_request_id: str, year_month: str):
    """Print archived messages of QUOTE_REQUEST_ID for YEAR_MONTH (YYYY-MM)."""
    messages = _run(lambda s: s.load_history(quote_request_id, year_month))
    _echo_json({"ok": True, "messages": messages})


@cli.command()
@click.argument("quote_request_id")
def months(quote_request_id: str):
    """List months with archived messages for QUOTE_REQUEST_ID."""
    found = _run(lambda s: s.list_archived_months(quote_request_id))
    _echo_json({"ok": True, "months": found})


def main():
    cli()


if __name__ == "__main__":
    main()
