# services/journal/intel/trade_math.py
"""Per-trade derived values computed when a trade is written."""

from typing import Optional

from .models import parse_timestamp


def profit_loss_percentage(profit_loss: float, balance: float) -> float:
    """P&L as a percentage of the account balance before the trade (4 dp)."""
    if balance is None or balance <= 0:
        return 0.0
    return round((profit_loss or 0) / balance * 100, 4)


def holding_duration_label(entry_date, exit_date) -> Optional[str]:
    """Human label for time in the trade: '2d 3h' past a day, else '5h 12m'."""
    entry = parse_timestamp(entry_date)
    exit_ = parse_timestamp(exit_date)
    if entry is None or exit_ is None:
        return None

    minutes_total = int((exit_ - entry).total_seconds() // 60)
    hours, minutes = divmod(minutes_total, 60)
    if hours > 24:
        days, hours = divmod(hours, 24)
        return f"{days}d {hours}h"
    return f"{hours}h {minutes}m"


def derive_risk_reward_ratio(
    direction: Optional[str],
    entry_price: Optional[float],
    exit_price: Optional[float],
    stop_loss: Optional[float],
) -> Optional[float]:
    """Realized reward over the risk taken to the stop, or None if risk is undefined."""
    if None in (entry_price, exit_price, stop_loss) or not direction:
        return None

    entry, exit_, stop = float(entry_price), float(exit_price), float(stop_loss)
    if direction.upper() == 'LONG':
        risk, reward = entry - stop, exit_ - entry
    else:
        risk, reward = stop - entry, entry - exit_

    if risk <= 0:
        return None
    return round(reward / risk, 2)
