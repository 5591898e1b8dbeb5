"""
On-chain Fetcher Module

Fetches a transaction and its receipt through the endpoint resolver and
turns them into a settlement value. Node failures are mapped onto the
settlement error taxonomy so the processor can decide whether to retry.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging

from web3.exceptions import TransactionNotFound

from ..config.chain_config import TRACKED_ASSETS, TrackedAsset
from .endpoint_resolver import EndpointResolver
from .errors import RpcCallError, TransactionPending, UnknownTransaction
from .price_service import NativePriceResolver, PriceQuote
from .settlement import SettlementValue, compute_settlement
from .transfer_decoder import TransferAggregate, calculate_gas_fee, decode_transfer_logs, wei_to_eth

logger = logging.getLogger(__name__)


@dataclass
class FetchedTransaction:
    """A mined transaction, its receipt and the connection that served them."""
    tx_hash: str
    tx: Mapping
    receipt: Mapping
    w3: Any = None
    endpoint_url: str = ""

    @property
    def sender(self) -> str:
        return str(self.tx.get('from', ''))

    @property
    def logs(self) -> List[Mapping]:
        return list(self.receipt.get('logs') or [])

    @property
    def native_moved(self) -> Decimal:
        return wei_to_eth(self.tx.get('value', 0) or 0)

    @property
    def gas_used_native(self) -> Decimal:
        return calculate_gas_fee(self.receipt, self.tx)


class TransactionFetcher:
    """Fetch transaction + receipt with one endpoint failover retry."""

    def __init__(self, resolver: EndpointResolver):
        self.resolver = resolver

    def _get_transaction(self, w3: Any, tx_hash: str) -> Mapping:
        try:
            tx = w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            raise UnknownTransaction("Transaction not found - invalid hash or not yet broadcasted")
        if tx is None:
            raise UnknownTransaction("Transaction not found - invalid hash or not yet broadcasted")
        return tx

    def fetch(self, tx_hash: str) -> FetchedTransaction:
        """
        Fetch a mined transaction.

        Raises:
            EndpointUnavailable: no endpoint passed the health check
            UnknownTransaction: node does not know the hash
            TransactionPending: transaction has no receipt yet
            RpcCallError: a call failed on both the cached and a fresh endpoint
        """
        resolved = self.resolver.resolve()

        try:
            tx = self._get_transaction(resolved.w3, tx_hash)
        except UnknownTransaction:
            raise
        except Exception as e:
            # This RPC failed after its health check; retry on a fresh provider
            logger.warning(f"[RPC] getTransaction failed on {resolved.url}, retrying with fresh provider: {e}")
            self.resolver.invalidate()
            resolved = self.resolver.resolve()
            try:
                tx = self._get_transaction(resolved.w3, tx_hash)
            except UnknownTransaction:
                raise
            except Exception as retry_error:
                self.resolver.invalidate()
                raise RpcCallError(f"RPC connection failed while fetching transaction: {retry_error}")

        try:
            receipt = resolved.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            receipt = None
        except Exception as e:
            self.resolver.invalidate()
            raise RpcCallError(f"RPC connection failed while fetching receipt: {e}")

        if receipt is None:
            # Transaction exists but no receipt = pending/not yet confirmed
            raise TransactionPending("Transaction pending - not yet included in a block")

        return FetchedTransaction(tx_hash=tx_hash, tx=tx, receipt=receipt, w3=resolved.w3, endpoint_url=resolved.url)


def decode_fetched(
    fetched: FetchedTransaction,
    tracked_assets: Optional[Mapping[str, TrackedAsset]] = None,
) -> Dict[str, TransferAggregate]:
    """Decode tracked transfers relative to the transaction sender."""
    return decode_transfer_logs(fetched.logs, fetched.sender, tracked_assets)


def settle_fetched(
    fetched: FetchedTransaction,
    transfers: Mapping[str, TransferAggregate],
    quote: PriceQuote,
    tracked_assets: Optional[Mapping[str, TrackedAsset]] = None,
) -> SettlementValue:
    return compute_settlement(
        transfers,
        native_moved=fetched.native_moved,
        price_usd=quote.price_usd,
        gas_used_native=fetched.gas_used_native,
        tracked_assets=tracked_assets,
    )


class SettlementResolver:
    """Transaction hash in, settlement value out."""

    def __init__(
        self,
        fetcher: TransactionFetcher,
        price_resolver: NativePriceResolver,
        tracked_assets: Optional[Mapping[str, TrackedAsset]] = None,
    ):
        self.fetcher = fetcher
        self.price_resolver = price_resolver
        self.tracked_assets = TRACKED_ASSETS if tracked_assets is None else tracked_assets

    def fetch_transaction_data(self, tx_hash: str) -> Tuple[SettlementValue, PriceQuote, FetchedTransaction]:
        fetched = self.fetcher.fetch(tx_hash)
        transfers = decode_fetched(fetched, self.tracked_assets)
        quote = self.price_resolver.resolve_usd_price(fetched.w3)
        settlement = settle_fetched(fetched, transfers, quote, self.tracked_assets)
        logger.debug(f"Settlement for {tx_hash} via {fetched.endpoint_url}: {settlement.describe()}")
        return settlement, quote, fetched
