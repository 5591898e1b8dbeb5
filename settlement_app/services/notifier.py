# -*- coding: utf-8 -*-
"""
Notification Module

Sends trade results to Telegram chats. A monitor endpoint can switch
individual notification patterns off; if the monitor cannot be reached the
message is sent anyway.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
import logging

import requests

from .errors import NotificationError

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
TRADE_PROFIT_PATTERN = "Trade Profit/Loss"
SEND_TIMEOUT = 10  # seconds
STATUS_TIMEOUT = 3  # seconds


class TelegramNotifier:
    """Telegram Bot API client with per-pattern gating"""

    def __init__(
        self,
        bot_token: str,
        chat_ids: List[str],
        pattern_status_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        if not bot_token:
            raise ValueError("bot_token is required")
        self.bot_token = bot_token
        self.chat_ids = list(chat_ids)
        self.pattern_status_url = pattern_status_url.rstrip('/') if pattern_status_url else None
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings) -> Optional["TelegramNotifier"]:
        if not settings.telegram_bot_token or not settings.telegram_chat_ids:
            logger.warning("TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_IDS not set - Telegram notifications disabled")
            return None
        return cls(
            settings.telegram_bot_token,
            settings.telegram_chat_ids,
            pattern_status_url=settings.notify_status_url,
        )

    def is_pattern_enabled(self, pattern: str) -> bool:
        """Check if a specific notification pattern is enabled (defaults to enabled)."""
        if not self.pattern_status_url:
            return True
        try:
            response = self.session.get(f"{self.pattern_status_url}/status", timeout=STATUS_TIMEOUT)
            if not response.ok:
                return True
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Failed to check pattern status: {e}")
            return True

        if not isinstance(data, dict):
            logger.warning(f"Unexpected pattern status payload: {data!r}")
            return True

        if not data.get('enabled'):
            return False

        patterns = data.get('patterns')
        for entry in patterns if isinstance(patterns, list) else []:
            if isinstance(entry, dict) and entry.get('name') == pattern:
                return bool(entry.get('enabled', True))
        return True

    def send_message(self, message: str, pattern: Optional[str] = TRADE_PROFIT_PATTERN,
                     timestamp: Optional[datetime] = None) -> bool:
        """
        Send an HTML message to every configured chat.

        Returns:
            False when the pattern is disabled, True when at least one chat got it

        Raises:
            NotificationError: every chat failed
        """
        if pattern and not self.is_pattern_enabled(pattern):
            logger.info(f"Notification skipped: pattern \"{pattern}\" is disabled")
            return False

        timestamp = timestamp or datetime.now(timezone.utc)
        text = f"🔔 {message}\n\n⏰ {timestamp.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}"

        url = f"{TELEGRAM_API_URL}/bot{self.bot_token}/sendMessage"
        failures = []
        for chat_id in self.chat_ids:
            try:
                response = self.session.post(url, json={
                    'chat_id': chat_id,
                    'text': text,
                    'parse_mode': 'HTML',
                }, timeout=SEND_TIMEOUT)
                data = response.json()
                if not data.get('ok'):
                    failures.append(f"{chat_id}: {data.get('description', response.status_code)}")
            except (requests.exceptions.RequestException, ValueError) as e:
                failures.append(f"{chat_id}: {e}")

        if failures:
            logger.error(f"Some Telegram messages failed: {failures}")
        if self.chat_ids and len(failures) == len(self.chat_ids):
            raise NotificationError(f"All Telegram chats failed: {failures}")
        return True


def format_trade_notification(
    direction_label: str,
    onsite_value: Decimal,
    onchain_value: Decimal,
    gas_used_usd: Decimal,
    raw_profit: Decimal,
    profit_with_gas: Decimal,
    trade_amount: Optional[Decimal] = None,
    trade_id: Optional[str] = None,
) -> str:
    """Render the profit/loss message for one resolved trade."""
    profit_emoji = '💰' if profit_with_gas >= 0 else '📉'
    profit_label = 'PROFIT' if profit_with_gas >= 0 else 'LOSS'
    amount = f"{trade_amount:,.2f}" if trade_amount is not None else '?'
    title = f"{profit_emoji} <b>Trade {profit_label}</b>"
    if trade_id:
        title += f" #{trade_id}"

    return (
        f"{title}\n\n"
        f"Amount: {amount} RLB\n"
        f"Direction: {direction_label}\n\n"
        f"Onsite: ${onsite_value:.2f}\n"
        f"Onchain: ${onchain_value:.2f}\n"
        f"Gas: ${gas_used_usd:.4f}\n\n"
        f"<b>Raw Profit: ${raw_profit:.2f}</b>\n"
        f"<b>Final Profit: ${profit_with_gas:.2f}</b>"
    )
