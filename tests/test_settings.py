"""
Unit tests for environment-driven settings.
"""
import pytest
from decimal import Decimal
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from settlement_app.config.chain_config import DEFAULT_PRIMARY_RPC_URL
from settlement_app.config.settings import ProcessorSettings

ENV_VARS = [
    'ETH_RPC_URL', 'QUICKNODE_RPC_URL', 'ETH_RPC_URL_2', 'QUICKNODE_RPC_URL_2',
    'PROCESS_INTERVAL_SECONDS', 'MAX_TRADES_PER_BATCH', 'DATABASE_URL',
    'RPC_TIMEOUT_SECONDS', 'PRICE_API_TIMEOUT_SECONDS', 'ETH_PRICE_CACHE_TTL_SECONDS',
    'MIN_ONCHAIN_VALUE_USD', 'ALLOW_FALLBACK_PRICE', 'SHUTDOWN_GRACE_SECONDS',
    'STATUS_INTERVAL_SECONDS', 'TELEGRAM_BOT_TOKEN', 'TELEGRAM_CHAT_IDS',
    'NOTIFY_STATUS_URL', 'COINGECKO_API_KEY', 'SETTLEMENT_DEBUG',
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Point dotenv at an empty file so a developer's .env does not leak in
    empty_env = tmp_path / ".env"
    empty_env.write_text("")
    return str(empty_env)


class TestFromEnv:
    """Test settings parsing."""

    def test_defaults(self, clean_env):
        settings = ProcessorSettings.from_env(clean_env)

        assert settings.primary_rpc_url == DEFAULT_PRIMARY_RPC_URL
        assert settings.secondary_rpc_url is None
        assert settings.process_interval == 4.0
        assert settings.batch_size == 10
        assert settings.database_url == "sqlite:///trades.db"
        assert settings.price_cache_ttl == 3600
        assert settings.min_onchain_value_usd == Decimal("1")
        assert settings.allow_fallback_price is False
        assert settings.telegram_chat_ids == []
        assert settings.debug is False

    def test_overrides(self, clean_env, monkeypatch):
        monkeypatch.setenv('QUICKNODE_RPC_URL', 'https://primary.example')
        monkeypatch.setenv('QUICKNODE_RPC_URL_2', '/data/geth.ipc')
        monkeypatch.setenv('PROCESS_INTERVAL_SECONDS', '2.5')
        monkeypatch.setenv('MAX_TRADES_PER_BATCH', '25')
        monkeypatch.setenv('MIN_ONCHAIN_VALUE_USD', '0.5')
        monkeypatch.setenv('ALLOW_FALLBACK_PRICE', 'true')
        monkeypatch.setenv('TELEGRAM_CHAT_IDS', '111, 222,')

        settings = ProcessorSettings.from_env(clean_env)

        assert settings.primary_rpc_url == 'https://primary.example'
        assert settings.secondary_rpc_url == '/data/geth.ipc'
        assert settings.process_interval == 2.5
        assert settings.batch_size == 25
        assert settings.min_onchain_value_usd == Decimal("0.5")
        assert settings.allow_fallback_price is True
        assert settings.telegram_chat_ids == ['111', '222']

    def test_debug_read_from_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / "debug.env"
        env_file.write_text("SETTLEMENT_DEBUG=true\n")

        assert ProcessorSettings.from_env(str(env_file)).debug is True

    def test_eth_rpc_url_takes_precedence(self, clean_env, monkeypatch):
        monkeypatch.setenv('ETH_RPC_URL', 'https://a.example')
        monkeypatch.setenv('QUICKNODE_RPC_URL', 'https://b.example')

        assert ProcessorSettings.from_env(clean_env).primary_rpc_url == 'https://a.example'

    @pytest.mark.parametrize("name,value", [
        ('PROCESS_INTERVAL_SECONDS', 'fast'),
        ('MAX_TRADES_PER_BATCH', '2.5'),
        ('MIN_ONCHAIN_VALUE_USD', 'one'),
    ])
    def test_invalid_number_names_variable(self, clean_env, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ValueError, match=name):
            ProcessorSettings.from_env(clean_env)


class TestValidate:
    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            ProcessorSettings(process_interval=0).validate()

    def test_rejects_empty_batch(self):
        with pytest.raises(ValueError):
            ProcessorSettings(batch_size=0).validate()

    def test_defaults_valid(self):
        ProcessorSettings().validate()
