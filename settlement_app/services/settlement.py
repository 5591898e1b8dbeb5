"""
Settlement Value Calculator

Combines decoded token transfers, native ETH attached to the transaction and
gas cost into USD totals, and turns those into trade profit.

Directions:
- buy_onsite_sell_onchain: we sell the traded asset on-chain and RECEIVE
  stablecoins/WETH, so the on-chain leg is what we received.
- sell_onsite_buy_onchain: we buy the traded asset on-chain and SEND
  stablecoins/WETH/ETH, so the on-chain leg is what we sent.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Mapping, Optional, Union

from ..config.chain_config import MIN_ONCHAIN_VALUE_USD, TRACKED_ASSETS, TrackedAsset
from .errors import InvalidOnchainValue
from .transfer_decoder import TransferAggregate

ZERO = Decimal(0)


class TradeDirection(Enum):
    """Which leg of the trade happens on-chain"""
    BUY_ONSITE_SELL_ONCHAIN = "buy_onsite_sell_onchain"
    SELL_ONSITE_BUY_ONCHAIN = "sell_onsite_buy_onchain"

    @classmethod
    def parse(cls, value: Union[str, "TradeDirection", None]) -> "TradeDirection":
        """Parse a stored direction; records without one default to selling on-chain."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.BUY_ONSITE_SELL_ONCHAIN
        return cls(value)

    @property
    def label(self) -> str:
        if self is TradeDirection.BUY_ONSITE_SELL_ONCHAIN:
            return "Buy Onsite → Sell Onchain"
        return "Sell Onsite → Buy Onchain"


@dataclass
class SettlementValue:
    """USD value moved on-chain by one transaction, with its breakdown."""
    price_usd: Decimal
    transfers: Dict[str, TransferAggregate] = field(default_factory=dict)
    stable_received: Decimal = ZERO
    stable_sent: Decimal = ZERO
    wrapped_native_received: Decimal = ZERO
    wrapped_native_sent: Decimal = ZERO
    wrapped_native_received_usd: Decimal = ZERO
    wrapped_native_sent_usd: Decimal = ZERO
    native_moved: Decimal = ZERO
    native_moved_usd: Decimal = ZERO
    total_usd_received: Decimal = ZERO
    total_usd_sent: Decimal = ZERO
    gas_used_native: Decimal = ZERO
    gas_used_usd: Decimal = ZERO

    def describe(self) -> str:
        """One-line breakdown used in logs and error messages."""
        return (
            f"Stable sent: ${self.stable_sent:.2f}, WETH sent: ${self.wrapped_native_sent_usd:.2f}, "
            f"ETH sent: ${self.native_moved_usd:.2f}, Stable received: ${self.stable_received:.2f}, "
            f"WETH received: ${self.wrapped_native_received_usd:.2f}"
        )

    def to_dict(self) -> dict:
        return {
            'price_usd': float(self.price_usd),
            'transfers': {k: v.to_dict() for k, v in self.transfers.items()},
            'stable_received': float(self.stable_received),
            'stable_sent': float(self.stable_sent),
            'wrapped_native_received': float(self.wrapped_native_received),
            'wrapped_native_sent': float(self.wrapped_native_sent),
            'wrapped_native_received_usd': float(self.wrapped_native_received_usd),
            'wrapped_native_sent_usd': float(self.wrapped_native_sent_usd),
            'native_moved': float(self.native_moved),
            'native_moved_usd': float(self.native_moved_usd),
            'total_usd_received': float(self.total_usd_received),
            'total_usd_sent': float(self.total_usd_sent),
            'gas_used_native': float(self.gas_used_native),
            'gas_used_usd': float(self.gas_used_usd),
        }


@dataclass(frozen=True)
class ProfitResult:
    raw_profit: Decimal
    profit_with_gas: Decimal


def compute_settlement(
    transfers: Mapping[str, TransferAggregate],
    native_moved: Decimal,
    price_usd: Decimal,
    gas_used_native: Decimal,
    tracked_assets: Optional[Mapping[str, TrackedAsset]] = None,
) -> SettlementValue:
    """
    Compute USD totals for a decoded transaction.

    Native ETH attached to the transaction counts as sent.
    """
    tracked_assets = TRACKED_ASSETS if tracked_assets is None else tracked_assets

    stable_received = stable_sent = ZERO
    wrapped_received = wrapped_sent = ZERO

    for symbol, aggregate in transfers.items():
        asset = tracked_assets.get(symbol)
        if asset is None:
            continue
        if asset.is_stable:
            stable_received += aggregate.received
            stable_sent += aggregate.sent
        elif asset.is_wrapped_native:
            wrapped_received += aggregate.received
            wrapped_sent += aggregate.sent

    wrapped_received_usd = wrapped_received * price_usd
    wrapped_sent_usd = wrapped_sent * price_usd
    native_moved_usd = native_moved * price_usd

    return SettlementValue(
        price_usd=price_usd,
        transfers=dict(transfers),
        stable_received=stable_received,
        stable_sent=stable_sent,
        wrapped_native_received=wrapped_received,
        wrapped_native_sent=wrapped_sent,
        wrapped_native_received_usd=wrapped_received_usd,
        wrapped_native_sent_usd=wrapped_sent_usd,
        native_moved=native_moved,
        native_moved_usd=native_moved_usd,
        total_usd_received=stable_received + wrapped_received_usd,
        total_usd_sent=stable_sent + wrapped_sent_usd + native_moved_usd,
        gas_used_native=gas_used_native,
        gas_used_usd=gas_used_native * price_usd,
    )


def onchain_value_for(direction: Union[str, TradeDirection, None], settlement: SettlementValue) -> Decimal:
    """Pick the on-chain leg value for the trade direction."""
    if TradeDirection.parse(direction) is TradeDirection.SELL_ONSITE_BUY_ONCHAIN:
        # Buying on-chain = we spend stablecoins/ETH
        return settlement.total_usd_sent
    return settlement.total_usd_received


def compute_profit(
    direction: Union[str, TradeDirection, None],
    onsite_value_usd: Decimal,
    onchain_value_usd: Decimal,
    gas_used_usd: Decimal,
) -> ProfitResult:
    """
    Calculate profit based on direction
    - buy_onsite_sell_onchain: profit = onchain_value - onsite_value
    - sell_onsite_buy_onchain: profit = onsite_value - onchain_value
    """
    if TradeDirection.parse(direction) is TradeDirection.SELL_ONSITE_BUY_ONCHAIN:
        raw_profit = onsite_value_usd - onchain_value_usd
    else:
        raw_profit = onchain_value_usd - onsite_value_usd

    return ProfitResult(raw_profit=raw_profit, profit_with_gas=raw_profit - gas_used_usd)


def validate_onchain_value(
    onchain_value_usd: Decimal,
    settlement: Optional[SettlementValue] = None,
    minimum: Decimal = MIN_ONCHAIN_VALUE_USD,
) -> None:
    """
    Reject near-zero on-chain values.

    A value this small almost always means no matching Transfer logs were
    found, not that the trade lost everything.
    """
    if onchain_value_usd >= minimum:
        return

    detail = f" {settlement.describe()}" if settlement is not None else ""
    raise InvalidOnchainValue(
        f"Invalid onchain value: {onchain_value_usd}. Transaction may not have any transfers "
        f"or logs failed to parse.{detail}"
    )
