"""
Smoke tests for the command line entry point (SQLite, no network).
"""
import pytest
from decimal import Decimal
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from settlement_app import logging_config
from settlement_app.cli import build_parser, main
from settlement_app.services.trade_store import TradeStore


@pytest.fixture
def env_file(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv('DATABASE_URL', db_url)
    path = tmp_path / ".env"
    path.write_text("")
    return str(path), db_url


class TestParser:
    def test_run_options(self):
        args = build_parser().parse_args(['-v', 'run', '--once', '--interval', '2', '--batch-size', '5'])

        assert args.command == 'run'
        assert args.once is True
        assert args.interval == 2.0
        assert args.batch_size == 5
        assert args.verbose is True

    def test_inspect_options(self):
        args = build_parser().parse_args(['inspect', '0xabc', '--direction', 'sell_onsite_buy_onchain', '--onsite', '12.5'])

        assert args.tx_hash == '0xabc'
        assert args.onsite == Decimal("12.5")

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    def test_init_db_then_report(self, env_file, capsys):
        path, db_url = env_file

        assert main(['--env-file', path, 'init-db']) == 0
        assert main(['--env-file', path, 'report']) == 0

        assert "No resolved trades in range" in capsys.readouterr().out
        store = TradeStore(db_url)
        assert store.select_unresolved(limit=1) == []
        store.engine.dispose()

    def test_unreachable_database_exits_1(self, tmp_path, monkeypatch):
        monkeypatch.setenv('DATABASE_URL', f"sqlite:///{tmp_path / 'no' / 'such' / 'dir.db'}")
        path = tmp_path / ".env"
        path.write_text("")

        assert main(['--env-file', str(path), 'run', '--once']) == 1

    def test_debug_flag_from_env_file_enables_file_logging(self, tmp_path, monkeypatch):
        """SETTLEMENT_DEBUG set only in the .env file still turns on debug file logging."""
        monkeypatch.delenv('SETTLEMENT_DEBUG', raising=False)
        monkeypatch.setenv('DATABASE_URL', f"sqlite:///{tmp_path / 'debug.db'}")
        path = tmp_path / ".env"
        path.write_text("SETTLEMENT_DEBUG=1\n")
        calls = []
        monkeypatch.setattr(logging_config, 'setup_debug_file_logging', lambda *a, **kw: calls.append(a))

        assert main(['--env-file', str(path), 'init-db']) == 0

        assert len(calls) == 1, "debug file logging should be enabled from the .env file"

    def test_debug_off_by_default(self, env_file, monkeypatch):
        path, _ = env_file
        monkeypatch.delenv('SETTLEMENT_DEBUG', raising=False)
        calls = []
        monkeypatch.setattr(logging_config, 'setup_debug_file_logging', lambda *a, **kw: calls.append(a))

        assert main(['--env-file', path, 'init-db']) == 0

        assert calls == []

    def test_invalid_config_exits_1(self, env_file, monkeypatch):
        path, _ = env_file
        monkeypatch.setenv('MAX_TRADES_PER_BATCH', 'lots')

        assert main(['--env-file', path, 'init-db']) == 1
