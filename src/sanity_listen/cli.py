"""
Command line interface for sanity-listen.

Streams listen events or follows a single document and prints each value as
JSON.
"""

import asyncio
import json
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import typer
from rich.console import Console

from .config import resolve_listen_options, resolve_timeout
from .documents.follow import follow_document
from .listen.options import ListenOptions
from .listen.protocol import EVENT_WELCOME, Event
from .listen.stream import open_event_stream
from .utils.errors import cli_error_handler
from .utils.logging import ContextKeys, LoggerFactory, LogFormat

logger = LoggerFactory.get_logger("cli")

app = typer.Typer(
    name="sanity-listen",
    help="Stream events from the Sanity listen API",
    no_args_is_help=True,
)

console = Console()


@dataclass
class CommonOptions:
    project_id: Optional[str]
    dataset: Optional[str]
    token: Optional[str]
    api_version: Optional[str]
    timeout: Optional[float]


@app.callback()
def main_callback(
    ctx: typer.Context,
    project_id: Optional[str] = typer.Option(
        None, "--project-id", "-p", help="Sanity project id (or SANITY_PROJECT_ID)"
    ),
    dataset: Optional[str] = typer.Option(
        None, "--dataset", "-d", help="Dataset name (or SANITY_DATASET)"
    ),
    token: Optional[str] = typer.Option(
        None, "--token", help="API token (or SANITY_TOKEN); required to see drafts"
    ),
    api_version: Optional[str] = typer.Option(
        None, "--api-version", help="API version (or SANITY_API_VERSION)"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds to wait for the next chunk (or SANITY_LISTEN_TIMEOUT)"
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level"),
    log_format: LogFormat = typer.Option(LogFormat.CONSOLE, "--log-format", help="Log format"),
):
    """Configure logging and collect connection options."""
    LoggerFactory.configure_logging(level=log_level, format_type=log_format.value)
    ctx.obj = CommonOptions(project_id, dataset, token, api_version, timeout)


def _split_pair(raw: str, flag: str) -> Tuple[str, str]:
    name, sep, value = raw.partition("=")
    if not sep or not name:
        raise typer.BadParameter(f"expected NAME=VALUE, got {raw!r}", param_hint=flag)
    return name, value


def _parse_variables(raw_vars: List[str]) -> Dict[str, Any]:
    variables: Dict[str, Any] = {}
    for raw in raw_vars:
        name, value = _split_pair(raw, "--var")
        try:
            variables[name] = json.loads(value)
        except json.JSONDecodeError:
            variables[name] = value
    return variables


def _resolve(common: CommonOptions, **extra: Any) -> ListenOptions:
    return resolve_listen_options(
        project_id=common.project_id,
        dataset=common.dataset,
        token=common.token,
        api_version=common.api_version,
        **extra,
    )


def _print_json(value: Any) -> None:
    console.print_json(json.dumps(value), highlight=False)


def _run(coro: Any, operation: str) -> None:
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]", highlight=False)
        raise typer.Exit(code=1)
    except typer.Exit:
        raise
    except Exception as e:
        cli_error_handler.handle_error(e, operation)


@app.command("events")
def events_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="GROQ filter, e.g. \"*[_type == 'post']\""),
    var: List[str] = typer.Option([], "--var", help="Query variable NAME=JSON (repeatable)"),
    param: List[str] = typer.Option([], "--param", help="Extra query parameter KEY=VALUE (repeatable)"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1, help="Stop after N events"),
    include_welcome: bool = typer.Option(
        True, "--include-welcome/--no-include-welcome", help="Print the welcome event"
    ),
):
    """
    Print every event received for QUERY as JSON.

    Example:
        sanity-listen -p abc123 -d production events "*[_type == 'post']" -n 5
    """
    common: CommonOptions = ctx.obj
    variables = _parse_variables(var)
    query_params = [_split_pair(raw, "--param") for raw in param]

    async def _events() -> None:
        options = _resolve(common, variables=variables, query_params=query_params)
        stream = await open_event_stream(
            query, options, timeout=resolve_timeout(common.timeout)
        )
        printed = 0
        async with stream:
            async for event in stream:
                if event.kind == EVENT_WELCOME and not include_welcome:
                    continue
                _print_json(_event_to_json(event))
                printed += 1
                if limit is not None and printed >= limit:
                    break
        logger.info(
            "Event stream finished",
            extra_context={ContextKeys.CLI_COMMAND: "events", "printed": printed},
        )

    _run(_events(), "listen for events")


@app.command("document")
def document_command(
    ctx: typer.Context,
    document_id: str = typer.Argument(..., help="Document id (published or drafts.*)"),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-n", min=1, help="Stop after N snapshots (the initial one included)"
    ),
):
    """
    Print the current version of a document, then each new version.

    Drafts take precedence over the published document; `null` means the
    document does not currently exist.
    """
    common: CommonOptions = ctx.obj

    async def _follow() -> None:
        options = _resolve(common)
        printed = 0
        async with aclosing(
            follow_document(document_id, options, timeout=resolve_timeout(common.timeout))
        ) as snapshots:
            async for snapshot in snapshots:
                _print_json(snapshot)
                printed += 1
                if limit is not None and printed >= limit:
                    break

    _run(_follow(), "follow document")


def _event_to_json(event: Event) -> Dict[str, Any]:
    return {"event": event.kind, "id": event.id, "data": event.data}


def main() -> None:
    """Entry point for CLI script."""
    app()
