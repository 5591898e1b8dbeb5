"""
Trade Store Module

Relational persistence for trade records (SQLAlchemy). The processor only
needs three things from it: select unresolved trades, write the computed
fields of one trade in a single update, and close the connection pool.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
import logging

from sqlalchemy import DateTime, Numeric, String, create_engine, or_, select, text, update
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

logger = logging.getLogger(__name__)

USD_COLUMN = Numeric(20, 8)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Trade(Base):
    """A cross-venue trade: onsite leg supplied externally, on-chain leg resolved here."""
    __tablename__ = "trades"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    trade_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)
    tx_hash: Mapped[Optional[str]] = mapped_column(String(80), index=True)
    direction: Mapped[Optional[str]] = mapped_column(String(32))
    trade_amount: Mapped[Optional[Decimal]] = mapped_column(USD_COLUMN)

    # Onsite leg (external)
    onsite_value_with_fee: Mapped[Optional[Decimal]] = mapped_column(USD_COLUMN)
    step1_usd_value: Mapped[Optional[Decimal]] = mapped_column(USD_COLUMN)

    # Computed by the processor, written together
    onchain_usd_value: Mapped[Optional[Decimal]] = mapped_column(USD_COLUMN)
    gas_used_usd: Mapped[Optional[Decimal]] = mapped_column(USD_COLUMN)
    raw_profit_usd: Mapped[Optional[Decimal]] = mapped_column(USD_COLUMN)
    profit_with_gas_usd: Mapped[Optional[Decimal]] = mapped_column(USD_COLUMN)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


@dataclass
class TradeRecord:
    """Detached snapshot of a trade row."""
    id: str
    tx_hash: Optional[str]
    direction: Optional[str] = None
    onsite_value_with_fee: Optional[Decimal] = None
    step1_usd_value: Optional[Decimal] = None
    trade_amount: Optional[Decimal] = None
    trade_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    onchain_usd_value: Optional[Decimal] = None
    gas_used_usd: Optional[Decimal] = None
    raw_profit_usd: Optional[Decimal] = None
    profit_with_gas_usd: Optional[Decimal] = None

    @property
    def display_id(self) -> str:
        return self.trade_id or self.id

    @property
    def onsite_value(self) -> Optional[Decimal]:
        """Prefer onsite_value_with_fee, fall back to step1_usd_value (zero counts as unset)"""
        if self.onsite_value_with_fee:
            return Decimal(self.onsite_value_with_fee)
        if self.step1_usd_value:
            return Decimal(self.step1_usd_value)
        return None

    @property
    def is_resolved(self) -> bool:
        return self.onchain_usd_value is not None and self.profit_with_gas_usd is not None

    @classmethod
    def from_row(cls, row: Trade) -> "TradeRecord":
        return cls(
            id=row.id,
            tx_hash=row.tx_hash,
            direction=row.direction,
            onsite_value_with_fee=row.onsite_value_with_fee,
            step1_usd_value=row.step1_usd_value,
            trade_amount=row.trade_amount,
            trade_id=row.trade_id,
            timestamp=row.timestamp,
            onchain_usd_value=row.onchain_usd_value,
            gas_used_usd=row.gas_used_usd,
            raw_profit_usd=row.raw_profit_usd,
            profit_with_gas_usd=row.profit_with_gas_usd,
        )


class TradeStore:
    """SQLAlchemy-backed trade storage."""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
        self.Session = sessionmaker(self.engine, expire_on_commit=False)

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def check_connection(self) -> None:
        """Run a trivial query; raises if the database is unreachable."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Database disconnected")

    def add_trade(self, **fields) -> str:
        """Insert a trade row and return its id."""
        with self.Session.begin() as session:
            row = Trade(**fields)
            session.add(row)
            session.flush()
            return row.id

    def get_trade(self, record_id: str) -> Optional[TradeRecord]:
        with self.Session() as session:
            row = session.get(Trade, record_id)
            return TradeRecord.from_row(row) if row is not None else None

    def select_unresolved(self, limit: int) -> List[TradeRecord]:
        """
        Trades that have a tx hash and an onsite value but are missing
        onchain_usd_value or profit_with_gas_usd, newest first.
        """
        stmt = (
            select(Trade)
            .where(
                Trade.tx_hash.is_not(None),
                Trade.tx_hash != "",
                or_(Trade.onsite_value_with_fee.is_not(None), Trade.step1_usd_value.is_not(None)),
                or_(Trade.onchain_usd_value.is_(None), Trade.profit_with_gas_usd.is_(None)),
            )
            .order_by(Trade.timestamp.desc())
            .limit(limit)
        )
        with self.Session() as session:
            return [TradeRecord.from_row(row) for row in session.scalars(stmt)]

    def select_resolved(self, since: Optional[datetime] = None, limit: Optional[int] = None) -> List[TradeRecord]:
        stmt = select(Trade).where(
            Trade.onchain_usd_value.is_not(None),
            Trade.profit_with_gas_usd.is_not(None),
        )
        if since is not None:
            stmt = stmt.where(Trade.timestamp >= since)
        stmt = stmt.order_by(Trade.timestamp.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.Session() as session:
            return [TradeRecord.from_row(row) for row in session.scalars(stmt)]

    def save_settlement(
        self,
        record_id: str,
        onchain_usd_value: Decimal,
        gas_used_usd: Decimal,
        raw_profit_usd: Decimal,
        profit_with_gas_usd: Decimal,
    ) -> bool:
        """
        Write all computed fields of one trade in a single transaction.

        Returns:
            False when no trade with this id exists
        """
        stmt = (
            update(Trade)
            .where(Trade.id == record_id)
            .values(
                onchain_usd_value=onchain_usd_value,
                gas_used_usd=gas_used_usd,
                raw_profit_usd=raw_profit_usd,
                profit_with_gas_usd=profit_with_gas_usd,
                updated_at=_utcnow(),
            )
        )
        with self.Session.begin() as session:
            result = session.execute(stmt)
            return result.rowcount == 1
