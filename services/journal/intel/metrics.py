# services/journal/intel/metrics.py
"""
Trade performance aggregation.

Pure functions over an in-memory list of trades: nothing is cached, nothing
in the input is mutated, every call recomputes from scratch.

Conventions:
    profit factor with no losses but some profit -> PROFIT_FACTOR_CAP (999.0)
    missing profit_loss                          -> treated as 0 (breakeven)
    risk/reward ratio                            -> averaged only where present and > 0
    holding time                                 -> hours, only where entry and exit exist
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from .models import (
    Trade,
    MetricsSummary,
    PerformancePoint,
    InstrumentMetrics,
    parse_timestamp,
)

PROFIT_FACTOR_CAP = 999.0

BUCKETS = ('daily', 'weekly', 'monthly')

_SECONDS_PER_HOUR = 3600.0


def _pnl(trade: Trade) -> float:
    value = getattr(trade, 'profit_loss', None)
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _rrr(trade: Trade) -> Optional[float]:
    value = getattr(trade, 'risk_reward_ratio', None)
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def _holding_hours(trade: Trade) -> Optional[float]:
    entry = parse_timestamp(getattr(trade, 'entry_date', None))
    exit_ = parse_timestamp(getattr(trade, 'exit_date', None))
    if entry is None or exit_ is None:
        return None
    return (exit_ - entry).total_seconds() / _SECONDS_PER_HOUR


def _bucket_date(trade: Trade) -> Optional[datetime]:
    return (
        parse_timestamp(getattr(trade, 'trade_date', None))
        or parse_timestamp(getattr(trade, 'entry_date', None))
    )


def profit_factor(total_profit: float, total_loss: float) -> float:
    """Gross profit / gross loss, capped at PROFIT_FACTOR_CAP when loss is zero."""
    if total_loss > 0:
        return total_profit / total_loss
    if total_profit > 0:
        return PROFIT_FACTOR_CAP
    return 0.0


def chronological(trades: Sequence[Trade]) -> List[Trade]:
    """Dated trades by bucket date, then undated ones in input order."""
    indexed = list(enumerate(trades))

    def key(item):
        idx, trade = item
        when = _bucket_date(trade)
        if when is None:
            return (1, datetime.min, idx)
        return (0, when, idx)

    return [t for _, t in sorted(indexed, key=key)]


def _streaks_and_drawdown(trades: Sequence[Trade]):
    """Longest win/loss streaks and max peak-to-trough drop of cumulative P&L."""
    best_wins = best_losses = 0
    wins = losses = 0
    equity = peak = 0.0
    max_dd = 0.0

    for trade in chronological(trades):
        pnl = _pnl(trade)
        if pnl > 0:
            wins += 1
            losses = 0
        elif pnl < 0:
            losses += 1
            wins = 0
        else:
            wins = losses = 0
        best_wins = max(best_wins, wins)
        best_losses = max(best_losses, losses)

        equity += pnl
        peak = max(peak, equity)
        max_dd = max(max_dd, peak - equity)

    return best_wins, best_losses, max_dd


def compute_summary(trades: Iterable[Trade]) -> MetricsSummary:
    """Calculate the aggregate performance summary for a set of trades."""
    trades = list(trades)
    summary = MetricsSummary(total_trades=len(trades))

    if not trades:
        return summary

    total_profit = 0.0
    total_loss = 0.0
    rrr_sum = 0.0
    rrr_count = 0
    holding_sum = 0.0
    holding_count = 0

    for trade in trades:
        pnl = _pnl(trade)
        if pnl > 0:
            summary.winning_trades += 1
            total_profit += pnl
            summary.largest_win = max(summary.largest_win, pnl)
        elif pnl < 0:
            summary.losing_trades += 1
            total_loss += -pnl
            summary.largest_loss = max(summary.largest_loss, -pnl)
        else:
            summary.break_even_trades += 1

        rrr = _rrr(trade)
        if rrr is not None:
            rrr_sum += rrr
            rrr_count += 1

        hours = _holding_hours(trade)
        if hours is not None:
            holding_sum += hours
            holding_count += 1

    total = summary.total_trades
    summary.win_rate = summary.winning_trades / total * 100
    summary.total_profit = total_profit
    summary.total_loss = total_loss
    summary.net_profit_loss = total_profit - total_loss
    summary.profit_factor = profit_factor(total_profit, total_loss)

    if summary.winning_trades:
        summary.average_win = total_profit / summary.winning_trades
    if summary.losing_trades:
        summary.average_loss = total_loss / summary.losing_trades
    if rrr_count:
        summary.average_rrr = rrr_sum / rrr_count
    if holding_count:
        summary.average_holding_time = holding_sum / holding_count

    loss_rate = summary.losing_trades / total * 100
    summary.expectancy = (
        summary.win_rate / 100 * summary.average_win
        - loss_rate / 100 * summary.average_loss
    )

    (
        summary.max_consecutive_wins,
        summary.max_consecutive_losses,
        summary.max_drawdown,
    ) = _streaks_and_drawdown(trades)

    return summary


def period_key(when: datetime, bucket: str) -> str:
    """
    Calendar bucket key for a timestamp.

    daily   -> YYYY-MM-DD
    weekly  -> YYYY-MM-DD of the Sunday starting that week
    monthly -> YYYY-MM
    """
    if bucket == 'daily':
        return when.date().isoformat()
    if bucket == 'weekly':
        # weekday(): Monday=0 .. Sunday=6
        start = when.date() - timedelta(days=(when.weekday() + 1) % 7)
        return start.isoformat()
    if bucket == 'monthly':
        return f"{when.year:04d}-{when.month:02d}"
    raise ValueError(f"Unknown period '{bucket}' (expected one of {', '.join(BUCKETS)})")


def compute_over_time(trades: Iterable[Trade], bucket: str = 'monthly') -> Iterator[PerformancePoint]:
    """
    Yield per-period performance in ascending period order.

    Trades with neither a trade date nor an entry date cannot be placed on
    the calendar and are left out.
    """
    if bucket not in BUCKETS:
        raise ValueError(f"Unknown period '{bucket}' (expected one of {', '.join(BUCKETS)})")

    by_period: Dict[str, List[Trade]] = {}
    for trade in trades:
        when = _bucket_date(trade)
        if when is None:
            continue
        by_period.setdefault(period_key(when, bucket), []).append(trade)

    return _emit_periods(by_period)


def _emit_periods(by_period: Dict[str, List[Trade]]) -> Iterator[PerformancePoint]:
    cumulative = 0.0
    # ISO keys sort lexicographically in calendar order
    for key in sorted(by_period):
        period_trades = by_period[key]
        summary = compute_summary(period_trades)
        cumulative += summary.net_profit_loss
        yield PerformancePoint(
            period=key,
            trades=len(period_trades),
            win_rate=summary.win_rate,
            profit_loss=summary.net_profit_loss,
            cumulative_profit_loss=cumulative,
        )


def compute_by_instrument(trades: Iterable[Trade]) -> List[InstrumentMetrics]:
    """
    Per-instrument performance, best net P&L first.

    Equal P&L rows keep the order in which their instrument was first seen.
    """
    groups: "OrderedDict[tuple, List[Trade]]" = OrderedDict()
    for trade in trades:
        key = (getattr(trade, 'instrument_type', None), getattr(trade, 'instrument_name', None))
        groups.setdefault(key, []).append(trade)

    rows = []
    for (instrument_type, instrument_name), group in groups.items():
        summary = compute_summary(group)
        rows.append(InstrumentMetrics(
            instrument_type=instrument_type,
            instrument_name=instrument_name,
            trades=len(group),
            win_rate=summary.win_rate,
            profit_loss=summary.net_profit_loss,
            profit_factor=summary.profit_factor,
            average_rrr=summary.average_rrr,
        ))

    rows.sort(key=lambda row: row.profit_loss, reverse=True)
    return rows


def current_balance(initial_balance: float, trades: Iterable[Trade]) -> float:
    """Account balance after applying every trade's P&L to the starting balance."""
    return float(initial_balance or 0) + sum(_pnl(t) for t in trades)
