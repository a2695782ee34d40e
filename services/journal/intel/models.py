# services/journal/intel/models.py
"""Data models for the journal service."""

from dataclasses import dataclass, field, asdict, fields
from datetime import date, datetime, timezone
from typing import Optional, List, Any
import json
import uuid


INSTRUMENT_TYPES = (
    'FOREX', 'CRYPTO', 'STOCKS', 'FUTURES', 'OPTIONS', 'COMMODITIES', 'INDICES', 'OTHER'
)
DIRECTIONS = ('LONG', 'SHORT')

DEFAULT_INITIAL_BALANCE = 10000.0


def _utcnow() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat()


def to_camel(name: str) -> str:
    """snake_case -> camelCase for API payloads."""
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Coerce a stored/API timestamp into a naive UTC datetime.

    Accepts datetime, date, ISO-8601 strings (with or without 'Z') and None.
    Anything unparseable is treated as absent.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


@dataclass
class User:
    """A journal owner and their account settings."""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    initial_balance: float = DEFAULT_INITIAL_BALANCE

    created_at: str = field(default_factory=_utcnow)
    updated_at: str = field(default_factory=_utcnow)

    def to_api_dict(self) -> dict:
        return {to_camel(k): v for k, v in asdict(self).items()}


@dataclass
class Trade:
    """A single journaled trade."""
    id: str
    user_id: str

    # Instrument
    instrument_type: str
    instrument_name: str
    direction: str  # LONG/SHORT

    # Prices & size
    entry_price: float
    exit_price: float
    quantity: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    position_size: Optional[float] = None

    # Result
    profit_loss: float = 0.0
    profit_loss_percentage: float = 0.0
    risk_reward_ratio: Optional[float] = None

    # Timing
    entry_date: Optional[str] = None
    exit_date: Optional[str] = None
    trade_date: Optional[str] = None
    duration: Optional[str] = None

    # Metadata
    setup_type: Optional[str] = None
    timeframe: Optional[str] = None
    notes: str = ''
    tags: List[str] = field(default_factory=list)
    image_url: Optional[str] = None

    created_at: str = field(default_factory=_utcnow)
    updated_at: str = field(default_factory=_utcnow)

    @staticmethod
    def new_id() -> str:
        """Generate a new trade ID."""
        return str(uuid.uuid4())

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def to_dict(self) -> dict:
        """Convert to a flat dict for database storage."""
        d = asdict(self)
        d['tags'] = json.dumps(d['tags']) if d['tags'] else '[]'
        return d

    def to_api_dict(self) -> dict:
        """Convert to API response format (camelCase keys)."""
        return {to_camel(k): v for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, d: dict) -> 'Trade':
        """Create from dictionary (e.g., from database row)."""
        d = dict(d)  # copy, callers keep their dict
        if isinstance(d.get('tags'), str):
            d['tags'] = json.loads(d['tags']) if d['tags'] else []
        elif d.get('tags') is None:
            d['tags'] = []
        if d.get('notes') is None:
            d['notes'] = ''
        known = set(cls.field_names())
        return cls(**{k: v for k, v in d.items() if k in known})


@dataclass
class MetricsSummary:
    """
    Aggregate performance over a set of trades.

    Values are kept at full precision; to_api_dict() is the presentation
    boundary where monetary and rate fields get rounded.
    """
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    break_even_trades: int = 0

    win_rate: float = 0.0
    total_profit: float = 0.0
    total_loss: float = 0.0
    net_profit_loss: float = 0.0
    profit_factor: float = 0.0

    average_win: float = 0.0
    average_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0

    average_rrr: float = 0.0
    average_holding_time: float = 0.0  # hours

    expectancy: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0
    max_drawdown: float = 0.0

    API_NAMES = {
        'average_rrr': 'averageRRR',
    }

    def to_api_dict(self) -> dict:
        out = {}
        for k, v in asdict(self).items():
            out[self.API_NAMES.get(k, to_camel(k))] = round(v, 2) if isinstance(v, float) else v
        return out


@dataclass
class PerformancePoint:
    """One calendar bucket of the performance-over-time series."""
    period: str
    trades: int
    win_rate: float
    profit_loss: float
    cumulative_profit_loss: float

    def to_api_dict(self) -> dict:
        return {
            'period': self.period,
            'trades': self.trades,
            'winRate': round(self.win_rate, 2),
            'profitLoss': round(self.profit_loss, 2),
            'cumulativeProfitLoss': round(self.cumulative_profit_loss, 2),
        }


@dataclass
class InstrumentMetrics:
    """Performance of one (instrument type, instrument name) pair."""
    instrument_type: str
    instrument_name: str
    trades: int
    win_rate: float
    profit_loss: float
    profit_factor: float
    average_rrr: float

    def to_api_dict(self) -> dict:
        return {
            'instrumentType': self.instrument_type,
            'instrumentName': self.instrument_name,
            'trades': self.trades,
            'winRate': round(self.win_rate, 2),
            'profitLoss': round(self.profit_loss, 2),
            'profitFactor': round(self.profit_factor, 2),
            'averageRRR': round(self.average_rrr, 2),
        }
