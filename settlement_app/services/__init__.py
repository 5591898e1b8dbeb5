"""
Settlement services

- endpoint_resolver: health-checked RPC endpoint selection with failover
- transfer_decoder: ERC-20 Transfer log aggregation
- price_service: native asset USD price with cache and fallbacks
- settlement: USD settlement value and profit per trade direction
- onchain_fetcher: transaction + receipt fetch, settlement resolution
- trade_store: SQLAlchemy trade persistence
- notifier: Telegram notifications
- trade_processor: reconciliation loop
- profit_report: pandas profit summary
"""

from .errors import (
    SettlementError,
    EndpointUnavailable,
    RpcCallError,
    TransactionPending,
    PriceUnavailable,
    UnknownTransaction,
    InvalidOnchainValue,
    MissingOnsiteValue,
    MissingTransactionHash,
    UnknownDirection,
    TradeVanished,
    NotificationError,
)
from .endpoint_resolver import EndpointCandidate, EndpointResolver, ResolvedEndpoint, build_candidates
from .transfer_decoder import TransferAggregate, decode_transfer_logs
from .price_service import NativePriceResolver, PriceQuote
from .settlement import SettlementValue, TradeDirection, compute_profit, compute_settlement
from .onchain_fetcher import FetchedTransaction, SettlementResolver, TransactionFetcher
from .trade_store import TradeRecord, TradeStore
from .notifier import TelegramNotifier, format_trade_notification
from .trade_processor import BatchResult, ProcessorState, TradeOutcome, TradeProcessor

__all__ = [
    'SettlementError',
    'EndpointUnavailable',
    'RpcCallError',
    'TransactionPending',
    'PriceUnavailable',
    'UnknownTransaction',
    'InvalidOnchainValue',
    'MissingOnsiteValue',
    'MissingTransactionHash',
    'UnknownDirection',
    'TradeVanished',
    'NotificationError',
    'EndpointCandidate',
    'EndpointResolver',
    'ResolvedEndpoint',
    'build_candidates',
    'TransferAggregate',
    'decode_transfer_logs',
    'NativePriceResolver',
    'PriceQuote',
    'SettlementValue',
    'TradeDirection',
    'compute_profit',
    'compute_settlement',
    'FetchedTransaction',
    'SettlementResolver',
    'TransactionFetcher',
    'TradeRecord',
    'TradeStore',
    'TelegramNotifier',
    'format_trade_notification',
    'BatchResult',
    'ProcessorState',
    'TradeOutcome',
    'TradeProcessor',
]
