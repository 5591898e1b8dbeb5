"""
Transfer Event Decoder

Turns the raw logs of a transaction receipt into per-asset received/sent
totals for one account. Only ERC20 Transfer events emitted by tracked token
contracts are counted. Pure functions, no network access.
"""

from dataclasses import dataclass, field
from decimal import Decimal, getcontext
from typing import Any, Dict, Iterable, Mapping, Optional
import logging

from ..config.chain_config import NATIVE_DECIMALS, TRACKED_ASSETS, TRANSFER_EVENT_TOPIC, TrackedAsset

# Set decimal precision for token amount scaling
getcontext().prec = 50

logger = logging.getLogger(__name__)


@dataclass
class TransferAggregate:
    """Received/sent totals of one tracked asset for one account."""
    asset: str
    received: Decimal = field(default_factory=lambda: Decimal(0))
    sent: Decimal = field(default_factory=lambda: Decimal(0))

    def to_dict(self) -> dict:
        return {
            'asset': self.asset,
            'received': float(self.received),
            'sent': float(self.sent),
        }


def to_hex(value: Any) -> str:
    """Normalize bytes/HexBytes/str to a lowercase 0x-prefixed hex string."""
    if value is None:
        return "0x"
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value).lower()
    return text if text.startswith("0x") else "0x" + text


def topic_to_address(topic: Any) -> str:
    """Take the low-order 20 bytes of a 32-byte topic as an address."""
    return "0x" + to_hex(topic)[-40:]


def decode_uint(data: Any) -> int:
    """Decode log data as an unsigned integer (empty data decodes to 0)."""
    hex_value = to_hex(data)[2:]
    if not hex_value:
        return 0
    return int(hex_value, 16)


def scale_amount(raw: int, decimals: int) -> Decimal:
    """Convert a raw integer token amount to a fractional Decimal."""
    return Decimal(raw) / (Decimal(10) ** decimals)


def wei_to_eth(wei: int) -> Decimal:
    """Convert wei to ETH"""
    return scale_amount(int(wei or 0), NATIVE_DECIMALS)


def calculate_gas_fee(receipt: Mapping, tx: Mapping) -> Decimal:
    """Calculate gas fee in ETH"""
    gas_used = receipt.get('gasUsed', 0) or 0
    # Try effectiveGasPrice first (EIP-1559), fallback to gasPrice
    gas_price = receipt.get('effectiveGasPrice') or tx.get('gasPrice') or 0
    return wei_to_eth(gas_used * gas_price)


def decode_transfer_logs(
    logs: Iterable[Mapping],
    account: str,
    tracked_assets: Optional[Mapping[str, TrackedAsset]] = None,
) -> Dict[str, TransferAggregate]:
    """
    Aggregate tracked-token Transfer events relative to ``account``.

    Args:
        logs: receipt logs in order (web3 AttributeDicts or plain dicts)
        account: address whose movements are measured
        tracked_assets: symbol -> TrackedAsset table

    Returns:
        symbol -> TransferAggregate, one entry per tracked asset
    """
    tracked_assets = TRACKED_ASSETS if tracked_assets is None else tracked_assets
    by_address = {asset.address.lower(): symbol for symbol, asset in tracked_assets.items()}
    totals = {symbol: TransferAggregate(asset=symbol) for symbol in tracked_assets}
    account_lower = account.lower()

    for log in logs:
        topics = log.get('topics') or []
        if len(topics) < 3:
            continue
        if to_hex(topics[0]) != TRANSFER_EVENT_TOPIC:
            continue

        from_address = topic_to_address(topics[1])
        to_address = topic_to_address(topics[2])

        symbol = by_address.get(str(log.get('address', '')).lower())
        if symbol is None:
            continue

        amount = scale_amount(decode_uint(log.get('data')), tracked_assets[symbol].decimals)
        aggregate = totals[symbol]

        if to_address == account_lower:
            aggregate.received += amount
        if from_address == account_lower:
            aggregate.sent += amount

        logger.debug(
            f"Transfer {symbol} {amount} from {from_address} to {to_address} "
            f"(log {log.get('logIndex', '?')})"
        )

    return totals
