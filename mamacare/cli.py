"""mamacare CLI: Typer + Rich terminal interface.

Commands: serve, ask, prompt, config, history.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import aiosqlite
import typer
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from mamacare import __version__
from mamacare.keys import load_keys_env
from mamacare.schemas.chat import LANGUAGE_NAMES, ChatRequest, CommittedAnswer, Language, Platform
from mamacare.schemas.config import AppConfig
from mamacare.settings import default_config_path, load_config

# Load API keys from ~/.mamacare/keys.env and .env on startup
load_keys_env()

console = Console()

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="mamacare",
    help="Streaming prenatal health assistant.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(
    name="config",
    help="Show configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

history_app = typer.Typer(
    name="history",
    help="Query answered questions.",
    no_args_is_help=True,
)
app.add_typer(history_app, name="history")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"mamacare {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug logging.",
    ),
) -> None:
    """mamacare: prenatal questions answered by a streaming LLM proxy."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose)],
        force=True,
    )


# ── Helpers ──────────────────────────────────────────────────────


def _load_config(path: Path | None = None) -> AppConfig:
    """Load app config, exit on error."""
    try:
        return load_config(path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _display_answer(result: CommittedAnswer) -> None:
    if result.fallback:
        title, style = "[bold yellow]Answer (offline fallback)[/bold yellow]", "yellow"
    else:
        title, style = "[bold green]Answer[/bold green]", "green"
    console.print(Panel(result.answer, title=title, border_style=style))

    if result.suggestions:
        console.print("[bold]You might also ask:[/bold]")
        for i, suggestion in enumerate(result.suggestions, 1):
            console.print(f"  {i}. {suggestion}")

    footer = f"attempts: {result.attempts}"
    if result.record_id:
        footer += f" · saved as #{result.record_id}"
    console.print(f"[dim]{footer}[/dim]")


# ── mamacare serve ───────────────────────────────────────────────


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to listen on"),
    demo: bool = typer.Option(
        False, "--demo",
        help="Replay a canned answer instead of calling the model",
    ),
    config_file: Path = typer.Option(None, "--config", "-c", help="Path to a TOML config"),
) -> None:
    """Run the streaming proxy server."""
    import uvicorn

    from mamacare.providers import LiteLLMProvider, ScriptedProvider
    from mamacare.proxy import StreamingProxy
    from mamacare.server import create_app

    config = _load_config(config_file)
    if demo:
        provider = ScriptedProvider(delay=0.03, config=config.upstream)
    else:
        provider = LiteLLMProvider(config.upstream)
    proxy = StreamingProxy(provider, config.proxy)

    console.print(Panel(
        f"[bold]URL:[/bold] http://{host}:{port}/api/chat\n"
        f"[bold]Model:[/bold] {'scripted demo' if demo else config.upstream.model}\n"
        f"[bold]Timeout:[/bold] {config.upstream.timeout:.0f}s",
        title="[bold blue]mamacare proxy[/bold blue]",
        border_style="blue",
    ))

    uvicorn.run(create_app(proxy, config), host=host, port=port, log_level="warning")


# ── mamacare ask ─────────────────────────────────────────────────


@app.command()
def ask(
    question: str = typer.Argument(..., help="The question to ask"),
    language: Language = typer.Option(Language.ENGLISH, "--language", "-l", help="Answer language"),
    platform: Platform = typer.Option(Platform.WEB, "--platform", help="Client platform"),
    url: str = typer.Option(None, "--url", help="Proxy base URL (overrides config)"),
    save: bool = typer.Option(True, "--save/--no-save", help="Store the answer in history"),
    config_file: Path = typer.Option(None, "--config", "-c", help="Path to a TOML config"),
) -> None:
    """Ask a question through a running proxy and stream the answer."""
    from mamacare.consumer import ClientSession
    from mamacare.events import ConsumerEvent, EventType
    from mamacare.persistence import QuestionStore, close_db, init_db
    from mamacare.transport import HttpxTransport

    config = _load_config(config_file)
    try:
        request = ChatRequest(question=question, language=language, platform=platform)
    except ValueError as e:
        console.print(f"[red]Invalid question:[/red] {e}")
        raise typer.Exit(1) from None

    async def _ask() -> CommittedAnswer | None:
        db = None
        recorder = None
        if save and config.persistence.enabled:
            try:
                db = await init_db(config.persistence.db_path)
                recorder = QuestionStore(db)
            except (OSError, aiosqlite.Error) as e:
                console.print(f"[yellow]History disabled:[/yellow] {e}")

        transport = HttpxTransport(url or config.client.base_url)
        session = ClientSession(transport, config.client, recorder=recorder)

        with Live(Text("Sending...", style="dim"), console=console, transient=True) as live:
            def _render(event: ConsumerEvent) -> None:
                if event.type is EventType.PREVIEW_UPDATED:
                    live.update(Text(event.data["answer"] or "..."))
                elif event.type is EventType.RETRY_SCHEDULED:
                    live.update(Text(
                        f"Retrying in {event.data['delay']:.0f}s ({event.data['reason']})",
                        style="yellow",
                    ))

            session.emitter.subscribe(
                _render, EventType.PREVIEW_UPDATED, EventType.RETRY_SCHEDULED
            )
            try:
                return await session.ask(request)
            finally:
                await transport.aclose()
                if db is not None:
                    await close_db(db)

    result = asyncio.run(_ask())
    if result is None:
        console.print("[dim]Cancelled.[/dim]")
        raise typer.Exit(1)
    _display_answer(result)


# ── mamacare prompt ──────────────────────────────────────────────


@app.command()
def prompt(
    question: str = typer.Argument(..., help="The question to build a prompt for"),
    language: Language = typer.Option(Language.ENGLISH, "--language", "-l", help="Answer language"),
    platform: Platform = typer.Option(Platform.WEB, "--platform", help="Client platform"),
) -> None:
    """Print the instruction prompt that would be sent upstream."""
    from mamacare.prompts import build_prompt

    console.print(build_prompt(question, language, platform), markup=False, highlight=False)


# ── mamacare config ──────────────────────────────────────────────


@config_app.command("show")
def config_show(
    config_file: Path = typer.Option(None, "--config", "-c", help="Path to a TOML config"),
) -> None:
    """Show the configuration in effect."""
    config = _load_config(config_file)

    table = Table(title="Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    table.add_row("Config File", str(config_file or default_config_path()))
    table.add_row("Model", config.upstream.model)
    table.add_row("API Base", config.upstream.api_base or "(provider default)")
    table.add_row("API Key Env", config.upstream.api_key_env or "(none)")
    table.add_row("Upstream Timeout", f"{config.upstream.timeout:.0f}s")
    table.add_row("Max Tokens", str(config.upstream.max_tokens))
    table.add_row("Temperature", f"{config.upstream.temperature:.2f}")

    gib = config.proxy.gibberish
    table.add_row(
        "Gibberish Check",
        f"every {gib.check_every} deltas, last {gib.window_chars} chars, "
        f"space ratio < {gib.min_space_ratio:.3f}, lowercase run >= {gib.max_lowercase_run}",
    )
    table.add_row("Proxy URL", config.client.base_url)
    table.add_row("Client Retries", str(config.client.max_retries))
    table.add_row(
        "Client Backoff",
        f"{config.client.backoff_base:.1f}s doubling, cap {config.client.backoff_cap:.0f}s",
    )
    table.add_row("Attempt Timeout", f"{config.client.attempt_timeout:.0f}s")
    table.add_row("Save History", str(config.persistence.enabled))
    table.add_row("History DB Path", config.persistence.db_path)

    console.print(table)


# ── mamacare history ─────────────────────────────────────────────


@history_app.command("list")
def history_list(
    limit: int = typer.Option(20, "--limit", "-n", help="Max questions to show"),
    language: Language = typer.Option(None, "--language", "-l", help="Filter by language"),
    config_file: Path = typer.Option(None, "--config", "-c", help="Path to a TOML config"),
) -> None:
    """Show recently answered questions."""
    from mamacare.persistence import QuestionStore, close_db, init_db

    config = _load_config(config_file)

    async def _list():
        db = await init_db(config.persistence.db_path)
        try:
            return await QuestionStore(db).list_questions(limit=limit, language=language)
        finally:
            await close_db(db)

    records = asyncio.run(_list())

    if not records:
        console.print("[dim]No questions found.[/dim]")
        return

    table = Table(title=f"Questions ({len(records)} shown)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Question", max_width=50)
    table.add_column("Language", style="dim")
    table.add_column("Asked", style="dim")

    for record in records:
        table.add_row(
            record.record_id,
            record.question[:50],
            LANGUAGE_NAMES[record.language],
            record.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@history_app.command("show")
def history_show(
    record_id: str = typer.Argument(..., help="Question ID"),
    config_file: Path = typer.Option(None, "--config", "-c", help="Path to a TOML config"),
) -> None:
    """Show one answered question in full."""
    from mamacare.persistence import QuestionStore, close_db, init_db

    config = _load_config(config_file)

    async def _get():
        db = await init_db(config.persistence.db_path)
        try:
            return await QuestionStore(db).get_question(record_id)
        finally:
            await close_db(db)

    record = asyncio.run(_get())

    if not record:
        console.print(f"[red]Question not found:[/red] {record_id}")
        raise typer.Exit(1) from None

    console.print(Panel(
        record.answer,
        title=f"[bold]#{record.record_id}[/bold] {record.question}",
        subtitle=f"{LANGUAGE_NAMES[record.language]} · {record.created_at.isoformat()}",
        border_style="green",
    ))
    if record.suggestions:
        console.print("[bold]Suggested follow-ups:[/bold]")
        for i, suggestion in enumerate(record.suggestions, 1):
            console.print(f"  {i}. {suggestion}")


# ── Entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    app()
