"""
Trade Processor (reconciliation loop)

Background service that drains the backlog of trades whose on-chain leg has
not been valued yet:
- selects trades with a tx hash but no computed on-chain values
- fetches the transaction, decodes transfers and prices the native asset
- computes settlement value and profit, then writes them in one update
- sends a Telegram notification for each resolved trade

Records are processed one at a time. A failure on one record is logged and
counted, and the batch moves on to the next record.
"""

import signal
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional
import logging

from ..config.chain_config import MIN_ONCHAIN_VALUE_USD, TRACKED_ASSETS, TrackedAsset
from .errors import (
    MissingOnsiteValue,
    MissingTransactionHash,
    PriceUnavailable,
    SettlementError,
    TradeVanished,
    UnknownDirection,
)
from .notifier import format_trade_notification
from .onchain_fetcher import decode_fetched, settle_fetched
from .settlement import (
    TradeDirection,
    compute_profit,
    onchain_value_for,
    validate_onchain_value,
)
from .trade_store import TradeRecord

logger = logging.getLogger(__name__)


class ProcessorState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DECODING = "decoding"
    COMPUTING = "computing"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"
    FAILED = "failed"


@dataclass
class TradeOutcome:
    """Result of processing one trade record."""
    record_id: str
    success: bool
    error: Optional[str] = None
    transient: bool = False
    onchain_usd_value: Optional[Decimal] = None
    gas_used_usd: Optional[Decimal] = None
    raw_profit_usd: Optional[Decimal] = None
    profit_with_gas_usd: Optional[Decimal] = None
    price_source: Optional[str] = None
    failed_stage: Optional[ProcessorState] = None


@dataclass
class BatchResult:
    """Result of one tick."""
    selected: int = 0
    outcomes: List[TradeOutcome] = field(default_factory=list)
    storage_error: Optional[str] = None

    @property
    def processed(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)


class TradeProcessor:
    """
    Reconciliation loop as an explicit state machine.

    ``tick()`` runs one batch and can be called directly (tests, one-shot
    CLI) or from ``run()``/``start()`` on a fixed interval. Ticks are
    single-flight: a tick requested while another is running is skipped.
    """

    def __init__(
        self,
        store: Any,
        fetcher: Any,
        price_resolver: Any,
        notifier: Any = None,
        tracked_assets: Optional[Mapping[str, TrackedAsset]] = None,
        batch_size: int = 10,
        interval: float = 4.0,
        min_onchain_value_usd: Decimal = MIN_ONCHAIN_VALUE_USD,
        allow_fallback_price: bool = False,
        shutdown_grace: float = 1.0,
        status_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.fetcher = fetcher
        self.price_resolver = price_resolver
        self.notifier = notifier
        self.tracked_assets = TRACKED_ASSETS if tracked_assets is None else tracked_assets
        self.batch_size = batch_size
        self.interval = interval
        self.min_onchain_value_usd = min_onchain_value_usd
        self.allow_fallback_price = allow_fallback_price
        self.shutdown_grace = shutdown_grace
        self.status_interval = status_interval
        self.clock = clock

        self.state = ProcessorState.IDLE
        self.processed_count = 0
        self.error_count = 0
        self.last_process_time: Optional[datetime] = None
        # Terminal state of the most recent record and where it failed
        self.last_record_state: Optional[ProcessorState] = None
        self.last_failed_stage: Optional[ProcessorState] = None

        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._started_at = clock()
        self._closed = False

    @classmethod
    def from_settings(cls, settings, store, fetcher, price_resolver, notifier=None) -> "TradeProcessor":
        return cls(
            store=store,
            fetcher=fetcher,
            price_resolver=price_resolver,
            notifier=notifier,
            batch_size=settings.batch_size,
            interval=settings.process_interval,
            min_onchain_value_usd=settings.min_onchain_value_usd,
            allow_fallback_price=settings.allow_fallback_price,
            shutdown_grace=settings.shutdown_grace,
            status_interval=settings.status_interval,
        )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _enter(self, state: ProcessorState) -> None:
        self.state = state

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def tick(self) -> Optional[BatchResult]:
        """
        Process one batch of pending trades.

        Returns:
            BatchResult, or None when another tick is still running
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Previous tick still running, skipping")
            return None

        try:
            result = BatchResult()
            try:
                records = self.store.select_unresolved(self.batch_size)
            except Exception as e:
                self.error_count += 1
                result.storage_error = str(e)
                logger.error(f"[Error] Failed to load pending trades: {e}")
                return result

            self.last_process_time = datetime.now(timezone.utc)
            result.selected = len(records)
            if not records:
                return result

            logger.info(f"[Processing] Found {len(records)} pending trades")
            for record in records:
                if self.stop_requested:
                    break
                result.outcomes.append(self.process_trade(record))
            return result
        finally:
            self._enter(ProcessorState.IDLE)
            self._tick_lock.release()

    def process_trade(self, record: TradeRecord) -> TradeOutcome:
        """Resolve one trade; every failure is contained here."""
        try:
            outcome = self._resolve(record)
        except SettlementError as e:
            outcome = self._fail(record, e, transient=e.transient)
            if e.transient:
                logger.warning(f"[Retry later] Trade {record.display_id}: {e}")
            else:
                logger.error(f"[Error] Trade {record.display_id}: {e}")
        except Exception as e:
            outcome = self._fail(record, e)
            logger.exception(f"[Error] Trade {record.display_id}: unexpected failure: {e}")
        else:
            self.last_record_state = ProcessorState.IDLE
            self.last_failed_stage = None
        finally:
            self._enter(ProcessorState.IDLE)

        return outcome

    def _fail(self, record: TradeRecord, error: Exception, transient: bool = False) -> TradeOutcome:
        failed_stage = self.state
        self._enter(ProcessorState.FAILED)
        self.last_record_state = ProcessorState.FAILED
        self.last_failed_stage = failed_stage
        self.error_count += 1
        return TradeOutcome(
            record.id, success=False, error=str(error), transient=transient, failed_stage=failed_stage,
        )

    def _resolve(self, record: TradeRecord) -> TradeOutcome:
        if not record.tx_hash:
            raise MissingTransactionHash("No tx_hash")

        onsite_value = record.onsite_value
        if onsite_value is None:
            raise MissingOnsiteValue("No onsite value found")

        try:
            direction = TradeDirection.parse(record.direction)
        except ValueError:
            raise UnknownDirection(f"Unknown direction {record.direction!r}")

        self._enter(ProcessorState.FETCHING)
        fetched = self.fetcher.fetch(record.tx_hash)

        self._enter(ProcessorState.DECODING)
        transfers = decode_fetched(fetched, self.tracked_assets)
        quote = self.price_resolver.resolve_usd_price(fetched.w3)
        if quote.is_fallback_constant and not self.allow_fallback_price:
            raise PriceUnavailable(
                f"ETH price unavailable from every source (fallback ${quote.price_usd} not allowed)"
            )
        if quote.degraded:
            logger.warning(f"Trade {record.display_id}: using degraded ETH price ${quote.price_usd} ({quote.source})")

        self._enter(ProcessorState.COMPUTING)
        settlement = settle_fetched(fetched, transfers, quote, self.tracked_assets)
        onchain_value = onchain_value_for(direction, settlement)
        validate_onchain_value(onchain_value, settlement, self.min_onchain_value_usd)
        profit = compute_profit(direction, onsite_value, onchain_value, settlement.gas_used_usd)

        self._enter(ProcessorState.PERSISTING)
        saved = self.store.save_settlement(
            record.id,
            onchain_usd_value=onchain_value,
            gas_used_usd=settlement.gas_used_usd,
            raw_profit_usd=profit.raw_profit,
            profit_with_gas_usd=profit.profit_with_gas,
        )
        if not saved:
            raise TradeVanished(f"Trade {record.id} no longer exists")

        self.processed_count += 1
        logger.info(f"[Processed] Trade {record.display_id}: profit = ${profit.profit_with_gas:.2f}")

        self._enter(ProcessorState.NOTIFYING)
        self._notify(record, direction, onsite_value, onchain_value, settlement.gas_used_usd, profit)

        return TradeOutcome(
            record.id,
            success=True,
            onchain_usd_value=onchain_value,
            gas_used_usd=settlement.gas_used_usd,
            raw_profit_usd=profit.raw_profit,
            profit_with_gas_usd=profit.profit_with_gas,
            price_source=quote.source,
        )

    def _notify(self, record, direction, onsite_value, onchain_value, gas_used_usd, profit) -> None:
        if self.notifier is None:
            return
        message = format_trade_notification(
            direction.label,
            onsite_value,
            onchain_value,
            gas_used_usd,
            profit.raw_profit,
            profit.profit_with_gas,
            trade_amount=record.trade_amount,
            trade_id=record.trade_id,
        )
        try:
            self.notifier.send_message(message)
        except Exception as e:
            logger.error(f"[Telegram] Failed to send notification for trade {record.display_id}: {e}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def request_stop(self) -> None:
        """Stop scheduling new ticks; the current record is allowed to finish."""
        self._stop_event.set()

    def install_signal_handlers(self) -> None:
        def _handle(signum, frame):
            logger.info(f"[Shutdown] Received {signal.Signals(signum).name}, stopping service...")
            self.request_stop()

        signal.signal(signal.SIGINT, _handle)
        signal.signal(signal.SIGTERM, _handle)

    def run(self) -> None:
        """Tick now, then every ``interval`` seconds until a stop is requested."""
        logger.info(f"[Config] Process interval: {self.interval}s")
        logger.info(f"[Config] Max trades per batch: {self.batch_size}")
        logger.info("[Service] Starting trade processor...")

        next_status = self.clock() + self.status_interval
        while not self.stop_requested:
            self.tick()
            if self.clock() >= next_status:
                self.log_status()
                next_status = self.clock() + self.status_interval
            self._stop_event.wait(self.interval)

        self.shutdown()

    def start(self) -> None:
        """Run the loop on a background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning("Trade processor already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="trade-processor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Request a stop and wait for the background thread to finish shutting down."""
        self.request_stop()
        if self._thread:
            self._thread.join(timeout=self.shutdown_grace + self.interval + 5)

    def shutdown(self) -> None:
        """Wait up to the grace period for an in-flight tick, then close the store."""
        if self._closed:
            return
        self.request_stop()

        acquired = self._tick_lock.acquire(timeout=self.shutdown_grace)
        if not acquired:
            logger.warning(f"[Shutdown] Tick still running after {self.shutdown_grace}s grace period, closing anyway")
        try:
            close = getattr(self.store, 'close', None)
            if close is not None:
                close()
        except Exception as e:
            logger.error(f"[Shutdown] Failed to close store: {e}")
        finally:
            if acquired:
                self._tick_lock.release()
            self._closed = True

        logger.info(f"[Shutdown] Final stats - Processed: {self.processed_count}, Errors: {self.error_count}")

    def log_status(self) -> None:
        uptime = int(self.clock() - self._started_at)
        hours, remainder = divmod(uptime, 3600)
        minutes, seconds = divmod(remainder, 60)
        logger.info(
            f"[Status] Uptime: {hours}h {minutes}m {seconds}s | "
            f"Processed: {self.processed_count} | Errors: {self.error_count}"
        )

    def get_statistics(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'last_record_state': self.last_record_state.value if self.last_record_state else None,
            'last_failed_stage': self.last_failed_stage.value if self.last_failed_stage else None,
            'processed_count': self.processed_count,
            'error_count': self.error_count,
            'last_process_time': self.last_process_time.isoformat() if self.last_process_time else None,
            'fallback_price_hits': getattr(self.price_resolver, 'fallback_hits', 0),
            'running': self._thread is not None and self._thread.is_alive(),
        }
