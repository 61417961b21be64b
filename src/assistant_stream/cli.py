"""Command line interface for Assistant Stream."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from assistant_stream import __version__
from assistant_stream.config import (
    API_KEY_ENV,
    AVAILABLE_MODELS,
    AssistantConfig,
    find_model,
    load_config,
)
from assistant_stream.core.preview import EditPreview, PreviewUpdate
from assistant_stream.core.session import ConversationSession, SessionResult
from assistant_stream.events.bus import EventBus
from assistant_stream.history.turn_log import TurnLog
from assistant_stream.llm.client import StreamingClient
from assistant_stream.tools.registry import ToolRegistry
from assistant_stream.types import ErrorKind, EventType, StreamEvent, Turn, TurnRole

console = Console()


class StreamingDisplay:
    """Renders stream and session events to the terminal in real time."""

    def __init__(self, con: Console):
        self.con = con
        self._streaming = False

    def attach(self, bus: EventBus) -> None:
        bus.subscribe("*", self.handle)

    def handle(self, event: StreamEvent):
        if event.type == EventType.CONTENT_DELTA:
            if not self._streaming:
                self._streaming = True
            self.con.print(event.data.get("text", ""), end="", highlight=False)

        elif event.type == EventType.TOOL_USE_STARTED:
            self._flush()
            self.con.print(f"[yellow]> {event.data.get('tool_name', '?')}[/yellow]")

        elif event.type == EventType.TOOL_EXECUTED:
            ok = event.data.get("success", False) and not event.data.get("is_error")
            icon = "[green]OK[/green]" if ok else "[red]FAIL[/red]"
            out = event.data.get("content", "")
            if len(out) > 600:
                out = out[:600] + "\n..."
            if out.strip():
                self.con.print(Panel(out, title=f"{icon} {event.data.get('tool_name', '')}",
                                     border_style="dim", expand=False))

        elif event.type == EventType.RATE_LIMIT_WAITING:
            self._flush()
            self.con.print(
                f"[magenta]~ Rate limited, retrying in {event.data['seconds_remaining']}s"
                f" (attempt {event.data['attempt']}/{event.data['max_retries']})[/magenta]"
            )

        elif event.type == EventType.STREAM_ERROR:
            self._flush()
            error = event.data.get("error")
            self.con.print(f"[red]Error: {error}[/red]")
            if error is not None and error.kind is ErrorKind.NOT_CONFIGURED:
                self.con.print(f"[dim]Set {API_KEY_ENV} or provider.api_key in the config.[/dim]")

        elif event.type == EventType.SESSION_DONE:
            self._flush()

    def show_preview(self, update: PreviewUpdate) -> None:
        self._flush()
        self.con.print(
            f"[dim]~ {update.tool_name}: {len(update.content)} chars,"
            f" changes from line {update.first_changed_line}[/dim]",
            highlight=False,
        )

    def _flush(self):
        if self._streaming:
            self.con.print()
            self._streaming = False


def _document_reader(document: str | None):
    def read() -> str:
        if not document:
            return ""
        try:
            return Path(document).read_text(encoding="utf-8")
        except (OSError, ValueError):
            return ""
    return read


def _open_log(config: AssistantConfig, document: str | None) -> TurnLog:
    return TurnLog(
        document or "", suffix=config.history.suffix, version=config.history.version,
    )


async def _run_ask(
    config: AssistantConfig, prompt: str, document: str | None, model: str | None,
) -> SessionResult:
    bus = EventBus()
    client = StreamingClient(config.provider, config.retry, bus)
    registry = ToolRegistry()
    registry.discover()
    session = ConversationSession(client, registry, _open_log(config, document), config)
    if model:
        session.model = model
    display = StreamingDisplay(console)
    display.attach(bus)
    EditPreview.from_config(
        config.preview, display.show_preview, _document_reader(document),
    ).attach(bus)
    try:
        return await session.ask(prompt)
    finally:
        await client.close()


def _describe(turn: Turn) -> str:
    if turn.role is TurnRole.TOOL_INVOCATION:
        args = json.dumps(turn.tool_input, ensure_ascii=False)
        if len(args) > 120:
            args = args[:120] + "..."
        return f"{turn.tool_name} {args}"
    text = turn.text
    if len(text) > 300:
        text = text[:300] + "..."
    return text


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@click.group()
@click.version_option(__version__, prog_name="assistant-stream")
@click.option("--config", "-c", "config_path", default=None,
              help="Path to assistant_stream.yaml (auto-detected from CWD or ~/.assistant_stream/)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool):
    """Assistant Stream - streaming chat with tools and per-document history."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)

    try:
        config, config_file = load_config(config_path)
    except FileNotFoundError as e:
        raise click.ClickException(str(e)) from e
    ctx.obj = config
    if verbose:
        if config_file:
            console.print(f"[dim]Config: {config_file}[/dim]")
        else:
            console.print("[dim]Config: defaults (no assistant_stream.yaml found)[/dim]")


@main.command()
@click.argument("prompt")
@click.option("--document", "-d", default=None,
              help="Document the conversation belongs to (history is kept beside it)")
@click.option("--model", "-m", default=None, help="Model id (see `models`)")
@click.pass_obj
def ask(config: AssistantConfig, prompt: str, document: str | None, model: str | None):
    """Send PROMPT and stream the reply."""
    if model and find_model(model) is None:
        console.print(f"[yellow]Unknown model {model}, sending anyway[/yellow]")
    try:
        result = asyncio.run(_run_ask(config, prompt, document, model))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        raise SystemExit(130)

    if result.cancelled:
        console.print("[yellow]Cancelled.[/yellow]")
    elif result.max_rounds_reached:
        console.print(f"[yellow]Stopped after {config.max_rounds} tool rounds.[/yellow]")
    if result.error is not None:
        raise SystemExit(1)


@main.group()
def history():
    """Inspect or delete the history kept beside a document."""


@history.command("show")
@click.option("--document", "-d", required=True, help="Document path")
@click.pass_obj
def history_show(config: AssistantConfig, document: str):
    """Print the persisted turns."""
    log = _open_log(config, document)
    if not len(log):
        console.print(f"[dim]No history for {document}[/dim]")
        return
    table = Table(title=str(log.history_path))
    table.add_column("#", justify="right")
    table.add_column("Role")
    table.add_column("Time")
    table.add_column("Content")
    for i, turn in enumerate(log, 1):
        role = turn.role.name.lower().replace("_", " ")
        if turn.is_error:
            role = f"[red]{role}[/red]"
        table.add_row(str(i), role, turn.timestamp.strftime("%Y-%m-%d %H:%M:%S"), _describe(turn))
    console.print(table)


@history.command("clear")
@click.option("--document", "-d", required=True, help="Document path")
@click.pass_obj
def history_clear(config: AssistantConfig, document: str):
    """Delete the persisted history."""
    log = _open_log(config, document)
    log.clear()
    console.print(f"[green]Cleared history for {document}[/green]")


@main.command()
@click.pass_obj
def models(config: AssistantConfig):
    """List known models."""
    table = Table(title="Models")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Context", justify="right")
    table.add_column("Max output", justify="right")
    for info in AVAILABLE_MODELS:
        marker = " *" if info.id == config.default_model else ""
        table.add_row(
            info.id + marker, info.display_name,
            f"{info.context_window:,}", f"{info.max_output_tokens:,}",
        )
    console.print(table)


if __name__ == "__main__":
    main()
