"""
Profit Report Module

Summary statistics over resolved trades, built on a pandas DataFrame.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

import pandas as pd

REPORT_COLUMNS = [
    'id', 'trade_id', 'timestamp', 'direction', 'tx_hash',
    'onsite_value', 'onchain_usd_value', 'gas_used_usd',
    'raw_profit_usd', 'profit_with_gas_usd',
]
NUMERIC_COLUMNS = ['onsite_value', 'onchain_usd_value', 'gas_used_usd', 'raw_profit_usd', 'profit_with_gas_usd']


def build_trade_frame(records: Iterable[Any]) -> pd.DataFrame:
    """Turn trade records into a DataFrame sorted by timestamp (UTC)."""
    rows = []
    for record in records:
        rows.append({
            'id': record.id,
            'trade_id': record.trade_id,
            'timestamp': record.timestamp,
            'direction': record.direction,
            'tx_hash': record.tx_hash,
            'onsite_value': record.onsite_value,
            'onchain_usd_value': record.onchain_usd_value,
            'gas_used_usd': record.gas_used_usd,
            'raw_profit_usd': record.raw_profit_usd,
            'profit_with_gas_usd': record.profit_with_gas_usd,
        })

    df = pd.DataFrame(rows, columns=REPORT_COLUMNS)
    if df.empty:
        return df

    # SQLite hands back naive datetimes; treat them as UTC
    df['timestamp'] = pd.to_datetime(df['timestamp'], utc=True)
    for column in NUMERIC_COLUMNS:
        df[column] = df[column].apply(lambda v: float(v) if v is not None else None).astype(float)

    return df.sort_values('timestamp').reset_index(drop=True)


def _trade_label(row: pd.Series) -> str:
    return row['trade_id'] if pd.notna(row['trade_id']) and row['trade_id'] else row['id']


def summarize_profit(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Aggregate profit statistics.

    Returns:
        Dict with trade count, win rate, totals, best/worst trade and
        profit per hour/day over the span between first and last trade
    """
    resolved = df.dropna(subset=['profit_with_gas_usd']) if not df.empty else df
    if resolved.empty:
        return {'trades': 0}

    profit = resolved['profit_with_gas_usd']
    wins = int((profit > 0).sum())
    trades = len(resolved)

    span = resolved['timestamp'].max() - resolved['timestamp'].min()
    total_hours = span.total_seconds() / 3600
    profit_per_hour = float(profit.sum()) / total_hours if total_hours > 0 else 0.0

    best = resolved.loc[profit.idxmax()]
    worst = resolved.loc[profit.idxmin()]

    return {
        'trades': trades,
        'wins': wins,
        'win_rate': wins / trades * 100,
        'total_raw_profit': float(resolved['raw_profit_usd'].fillna(0).sum()),
        'total_gas_usd': float(resolved['gas_used_usd'].fillna(0).sum()),
        'total_profit_with_gas': float(profit.sum()),
        'avg_profit_with_gas': float(profit.mean()),
        'best_trade': {'id': _trade_label(best), 'profit': float(best['profit_with_gas_usd'])},
        'worst_trade': {'id': _trade_label(worst), 'profit': float(worst['profit_with_gas_usd'])},
        'total_hours': total_hours,
        'profit_per_hour': profit_per_hour,
        'profit_per_day': profit_per_hour * 24,
    }


def profit_by_direction(df: pd.DataFrame) -> pd.DataFrame:
    """Count and total profit grouped by trade direction."""
    if df.empty:
        return pd.DataFrame(columns=['direction', 'trades', 'total_profit_with_gas'])
    grouped = (
        df.assign(direction=df['direction'].fillna('buy_onsite_sell_onchain'))
        .groupby('direction')['profit_with_gas_usd']
        .agg(['count', 'sum'])
        .reset_index()
        .rename(columns={'count': 'trades', 'sum': 'total_profit_with_gas'})
    )
    return grouped


def format_report(summary: Dict[str, Any], since: Optional[datetime] = None) -> str:
    """Plain-text rendering for the CLI."""
    if not summary.get('trades'):
        return "No resolved trades in range"

    header = "Profit report"
    if since is not None:
        header += f" since {since.astimezone(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"

    lines = [
        header,
        "=" * len(header),
        f"Trades:            {summary['trades']} ({summary['wins']} wins, {summary['win_rate']:.1f}%)",
        f"Raw profit:        ${summary['total_raw_profit']:,.2f}",
        f"Gas:               ${summary['total_gas_usd']:,.2f}",
        f"Profit after gas:  ${summary['total_profit_with_gas']:,.2f}",
        f"Average per trade: ${summary['avg_profit_with_gas']:,.2f}",
        f"Best trade:        {summary['best_trade']['id']} (${summary['best_trade']['profit']:,.2f})",
        f"Worst trade:       {summary['worst_trade']['id']} (${summary['worst_trade']['profit']:,.2f})",
        f"Span:              {summary['total_hours']:.1f}h",
        f"Profit per hour:   ${summary['profit_per_hour']:,.2f}",
        f"Profit per day:    ${summary['profit_per_day']:,.2f}",
    ]
    return "\n".join(lines)
