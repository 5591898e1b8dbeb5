"""
Runtime settings for the trade processor.

Values come from the environment (optionally a .env file loaded with
python-dotenv). Every setting has a default so the processor can start
against a local node with no configuration at all.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from dotenv import load_dotenv

from .chain_config import (
    DEFAULT_PRIMARY_RPC_URL,
    ETH_PRICE_CACHE_TTL,
    MIN_ONCHAIN_VALUE_USD,
    PRICE_API_TIMEOUT,
    RPC_TIMEOUT,
)

TRUTHY = ('1', 'true', 'yes', 'on')


@dataclass
class ProcessorSettings:
    """Configuration surface of the reconciliation loop."""
    primary_rpc_url: str = DEFAULT_PRIMARY_RPC_URL
    secondary_rpc_url: Optional[str] = None
    process_interval: float = 4.0
    batch_size: int = 10
    database_url: str = "sqlite:///trades.db"
    rpc_timeout: float = float(RPC_TIMEOUT)
    price_api_timeout: float = float(PRICE_API_TIMEOUT)
    price_cache_ttl: float = float(ETH_PRICE_CACHE_TTL)
    min_onchain_value_usd: Decimal = MIN_ONCHAIN_VALUE_USD
    allow_fallback_price: bool = False
    shutdown_grace: float = 1.0
    status_interval: float = 60.0
    telegram_bot_token: Optional[str] = None
    telegram_chat_ids: List[str] = field(default_factory=list)
    notify_status_url: Optional[str] = None
    coingecko_api_key: Optional[str] = None
    debug: bool = False

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "ProcessorSettings":
        """Build settings from environment variables (and .env if present)."""
        load_dotenv(env_file)

        chat_ids = os.getenv('TELEGRAM_CHAT_IDS', '')

        return cls(
            primary_rpc_url=(
                os.getenv('ETH_RPC_URL') or os.getenv('QUICKNODE_RPC_URL') or DEFAULT_PRIMARY_RPC_URL
            ),
            secondary_rpc_url=os.getenv('ETH_RPC_URL_2') or os.getenv('QUICKNODE_RPC_URL_2') or None,
            process_interval=_env_float('PROCESS_INTERVAL_SECONDS', 4.0),
            batch_size=_env_int('MAX_TRADES_PER_BATCH', 10),
            database_url=os.getenv('DATABASE_URL', 'sqlite:///trades.db'),
            rpc_timeout=_env_float('RPC_TIMEOUT_SECONDS', float(RPC_TIMEOUT)),
            price_api_timeout=_env_float('PRICE_API_TIMEOUT_SECONDS', float(PRICE_API_TIMEOUT)),
            price_cache_ttl=_env_float('ETH_PRICE_CACHE_TTL_SECONDS', float(ETH_PRICE_CACHE_TTL)),
            min_onchain_value_usd=_env_decimal('MIN_ONCHAIN_VALUE_USD', MIN_ONCHAIN_VALUE_USD),
            allow_fallback_price=os.getenv('ALLOW_FALLBACK_PRICE', '').lower() in TRUTHY,
            shutdown_grace=_env_float('SHUTDOWN_GRACE_SECONDS', 1.0),
            status_interval=_env_float('STATUS_INTERVAL_SECONDS', 60.0),
            telegram_bot_token=os.getenv('TELEGRAM_BOT_TOKEN') or None,
            telegram_chat_ids=[c.strip() for c in chat_ids.split(',') if c.strip()],
            notify_status_url=os.getenv('NOTIFY_STATUS_URL') or None,
            coingecko_api_key=os.getenv('COINGECKO_API_KEY') or None,
            debug=os.getenv('SETTLEMENT_DEBUG', '').lower() in TRUTHY,
        )

    def validate(self) -> None:
        if self.process_interval <= 0:
            raise ValueError("process_interval must be positive")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.rpc_timeout <= 0 or self.price_api_timeout <= 0:
            raise ValueError("timeouts must be positive")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_decimal(name: str, default: Decimal) -> Decimal:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name} must be a decimal number, got {raw!r}")
