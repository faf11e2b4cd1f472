"""Tests for settings and the operational CLI."""

import logging
from uuid import uuid4

import pytest

from timebudget.cli import TimebudgetCli
from timebudget.config import Settings, get_settings


@pytest.fixture
def sqlite_file_db(tmp_path, monkeypatch):
    """Point the global settings at a throwaway SQLite file."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setenv("LOG_LEVEL", "warning")
    get_settings.cache_clear()
    logger = logging.getLogger("timebudget")
    level, handlers = logger.level, list(logger.handlers)
    yield
    logger.setLevel(level)
    logger.handlers[:] = handlers
    get_settings.cache_clear()


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("DATABASE_URL", "PORT", "DEBUG", "LOG_LEVEL", "RATE_FANOUT_MODE"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setattr("timebudget.config.load_dotenv", lambda: None)

        settings = Settings.from_env()

        assert settings.port == 8000
        assert settings.debug is False
        assert settings.log_level == "INFO"
        assert settings.rate_fanout_mode == "sync"
        assert not settings.is_sqlite

    def test_unsupported_fanout_mode(self, monkeypatch):
        monkeypatch.setenv("RATE_FANOUT_MODE", "queue")

        with pytest.raises(ValueError):
            Settings.from_env()


class TestCli:
    def test_no_command(self):
        assert TimebudgetCli().run([]) == 1

    def test_init_and_recalculate_all(self, sqlite_file_db, capsys):
        cli = TimebudgetCli()

        assert cli.run(["init-db"]) == 0
        assert cli.run(["recalculate-all"]) == 0
        assert cli.run(["backfill-rate-history"]) == 0

        out = capsys.readouterr().out
        assert "Schema created." in out
        assert "Recomputed: 0 project(s)" in out
        assert "Created rate history for 0 user(s)" in out

    def test_recalculate_unknown_project(self, sqlite_file_db, capsys):
        cli = TimebudgetCli()
        cli.run(["init-db"])

        assert cli.run(["recalculate", "--project-id", str(uuid4())]) == 1
        assert "not found" in capsys.readouterr().err
