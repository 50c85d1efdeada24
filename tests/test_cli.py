"""Tests for the CLI interface.

Covers --help output, prompt, config show, history list/show against a
temporary database, and ask against an in-process proxy via CliRunner.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

from mamacare import __version__
from mamacare.cli import app
from mamacare.persistence import QuestionStore, close_db, init_db
from mamacare.providers.scripted import ScriptedProvider
from mamacare.proxy import StreamingProxy
from mamacare.schemas.chat import Language
from mamacare.schemas.config import ProxyConfig
from mamacare.schemas.streaming import encode_event

# NO_COLOR=1 prevents Rich from injecting ANSI codes inside option names,
# which breaks substring matching in CI (headless, no TTY).
# COLUMNS=200 prevents wrapping that could split a flag across lines.
runner = CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})

# Patch target
_TRANSPORT = "mamacare.transport.HttpxTransport"


# ── Factories ──────────────────────────────────────────────────────


def _write_config(tmp_path: Path, *, persistence: bool = True) -> Path:
    db_path = tmp_path / "history" / "questions.db"
    path = tmp_path / "mamacare.toml"
    path.write_text(
        '[upstream]\nmodel = "openai/tgi"\n\n'
        "[client]\nmax_retries = 0\n\n"
        f"[persistence]\nenabled = {'true' if persistence else 'false'}\n"
        f'db_path = "{db_path.as_posix()}"\n',
        encoding="utf-8",
    )
    return path


def _seed_history(tmp_path: Path) -> None:
    async def _seed():
        db = await init_db(str(tmp_path / "history" / "questions.db"))
        store = QuestionStore(db)
        await store.save_question(
            "Is coffee safe?", Language.ENGLISH, "Limit caffeine to 200mg a day.",
            ["What drinks are safe?"],
        )
        await store.save_question(
            "Naweza kula samaki?", Language.SWAHILI, "Ndiyo, kwa kiasi.", [],
        )
        await close_db(db)

    asyncio.run(_seed())


class _ProxyTransport:
    """Stands in for HttpxTransport, streaming from an in-process proxy."""

    instances: list[_ProxyTransport] = []

    def __init__(self, base_url: str, provider: ScriptedProvider | None = None) -> None:
        self.base_url = base_url
        self.closed = False
        self._proxy = StreamingProxy(
            provider or ScriptedProvider(), ProxyConfig(fallback_slice_delay=0.0)
        )
        _ProxyTransport.instances.append(self)

    async def stream(self, request):
        async for event in self._proxy.stream(request):
            yield encode_event(event)

    async def aclose(self) -> None:
        self.closed = True


# ── Help and version ───────────────────────────────────────────────


class TestHelp:
    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "serve" in result.output
        assert "ask" in result.output
        assert "history" in result.output

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_ask_help(self):
        result = runner.invoke(app, ["ask", "--help"])
        assert result.exit_code == 0
        assert "--language" in result.output
        assert "--no-save" in result.output

    def test_serve_help(self):
        result = runner.invoke(app, ["serve", "--help"])
        assert result.exit_code == 0
        assert "--demo" in result.output


# ── prompt ─────────────────────────────────────────────────────────


class TestPromptCommand:
    def test_prints_prompt(self):
        result = runner.invoke(app, ["prompt", "Is coffee safe?", "--language", "lg"])
        assert result.exit_code == 0
        assert "Question: Is coffee safe?" in result.output
        assert "Respond ONLY in Luganda language" in result.output
        assert "SUGGESTED_QUESTIONS:" in result.output

    def test_invalid_language(self):
        result = runner.invoke(app, ["prompt", "q", "--language", "fr"])
        assert result.exit_code != 0


# ── config ─────────────────────────────────────────────────────────


class TestConfigShow:
    def test_packaged_defaults(self, monkeypatch):
        monkeypatch.delenv("MAMACARE_CONFIG", raising=False)
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "Config File" in result.output
        assert "openai/tgi" in result.output
        assert "Client Retries" in result.output

    def test_explicit_file(self, tmp_path):
        path = _write_config(tmp_path)
        result = runner.invoke(app, ["config", "show", "--config", str(path)])
        assert result.exit_code == 0
        assert "mamacare.toml" in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["config", "show", "--config", str(tmp_path / "nope.toml")])
        assert result.exit_code == 1
        assert "Error loading config" in result.output


# ── history ────────────────────────────────────────────────────────


class TestHistory:
    def test_empty(self, tmp_path):
        path = _write_config(tmp_path)
        result = runner.invoke(app, ["history", "list", "--config", str(path)])
        assert result.exit_code == 0
        assert "No questions found." in result.output

    def test_list(self, tmp_path):
        path = _write_config(tmp_path)
        _seed_history(tmp_path)
        result = runner.invoke(app, ["history", "list", "--config", str(path)])
        assert result.exit_code == 0
        assert "Is coffee safe?" in result.output
        assert "Swahili" in result.output

    def test_list_language_filter(self, tmp_path):
        path = _write_config(tmp_path)
        _seed_history(tmp_path)
        result = runner.invoke(
            app, ["history", "list", "--language", "sw", "--config", str(path)]
        )
        assert "Naweza kula samaki?" in result.output
        assert "Is coffee safe?" not in result.output

    def test_show(self, tmp_path):
        path = _write_config(tmp_path)
        _seed_history(tmp_path)
        result = runner.invoke(app, ["history", "show", "1", "--config", str(path)])
        assert result.exit_code == 0
        assert "Limit caffeine to 200mg a day." in result.output
        assert "What drinks are safe?" in result.output

    def test_show_missing(self, tmp_path):
        path = _write_config(tmp_path)
        result = runner.invoke(app, ["history", "show", "42", "--config", str(path)])
        assert result.exit_code == 1
        assert "Question not found" in result.output


# ── ask ────────────────────────────────────────────────────────────


class TestAsk:
    def setup_method(self):
        _ProxyTransport.instances.clear()

    def test_streams_and_saves_answer(self, tmp_path):
        path = _write_config(tmp_path)
        with patch(_TRANSPORT, _ProxyTransport):
            result = runner.invoke(
                app, ["ask", "What is prenatal care?", "--config", str(path)]
            )
        assert result.exit_code == 0, result.output
        assert "Prenatal care is essential healthcare" in result.output
        assert "You might also ask:" in result.output
        assert "When should I start prenatal care?" in result.output
        assert "saved as #1" in result.output

        transport = _ProxyTransport.instances[0]
        assert transport.base_url == "http://127.0.0.1:8000"
        assert transport.closed

        history = runner.invoke(app, ["history", "list", "--config", str(path)])
        assert "What is prenatal care?" in history.output

    def test_url_override_and_no_save(self, tmp_path):
        path = _write_config(tmp_path)
        with patch(_TRANSPORT, _ProxyTransport):
            result = runner.invoke(app, [
                "ask", "What is prenatal care?", "--url", "http://proxy.local:9000",
                "--no-save", "--config", str(path),
            ])
        assert result.exit_code == 0, result.output
        assert "saved as" not in result.output
        assert _ProxyTransport.instances[0].base_url == "http://proxy.local:9000"

    def test_fallback_answer_labelled(self, tmp_path):
        path = _write_config(tmp_path, persistence=False)

        def _failing(base_url):
            return _ProxyTransport(base_url, ScriptedProvider(fail_after=3))

        with patch(_TRANSPORT, _failing):
            result = runner.invoke(app, ["ask", "Can I fly?", "--config", str(path)])
        assert result.exit_code == 0, result.output
        assert "offline fallback" in result.output
        assert "Can I fly?" in result.output

    def test_blank_question_rejected(self, tmp_path):
        path = _write_config(tmp_path)
        result = runner.invoke(app, ["ask", "   ", "--config", str(path)])
        assert result.exit_code == 1
        assert "Invalid question" in result.output
