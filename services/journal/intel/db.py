# services/journal/intel/db.py
"""SQLite database operations for the journal service."""

import sqlite3
import json
import os
from pathlib import Path
from typing import List, Optional, Dict, Any, Tuple
from datetime import datetime, timezone

from .models import Trade, User, DEFAULT_INITIAL_BALANCE, parse_timestamp


# API sort names -> columns
SORT_COLUMNS = {
    'entryDate': 'entry_date',
    'exitDate': 'exit_date',
    'tradeDate': 'trade_date',
    'profitLoss': 'profit_loss',
    'instrumentName': 'instrument_name',
    'createdAt': 'created_at',
}

OUTCOME_CLAUSES = {
    'WIN': 'profit_loss > 0',
    'LOSS': 'profit_loss < 0',
    'BREAKEVEN': 'profit_loss = 0',
}

DATE_FIELDS = ('entry_date', 'exit_date', 'trade_date')


def _now() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat()


def normalize_date(value: Any) -> Optional[str]:
    """Store timestamps as naive-UTC ISO strings so they compare as text."""
    dt = parse_timestamp(value)
    return dt.isoformat() if dt else None


def _range_bound(value: Optional[str], end: bool) -> Optional[str]:
    """A bare YYYY-MM-DD end bound covers the whole day."""
    if not value:
        return None
    dt = parse_timestamp(value)
    if dt is None:
        raise ValueError(f"Invalid date: {value}")
    if end and len(value.strip()) == 10:
        return dt.replace(hour=23, minute=59, second=59, microsecond=999999).isoformat()
    return dt.isoformat()


class JournalDB:
    """SQLite database manager for users and trades."""

    def __init__(self, db_path: Optional[str] = None, default_initial_balance: float = DEFAULT_INITIAL_BALANCE):
        if db_path is None:
            # Default to services/journal/data/journal.db
            base = Path(__file__).resolve().parents[1]
            db_path = str(base / "data" / "journal.db")

        self.db_path = db_path
        self.default_initial_balance = float(default_initial_balance)
        self._ensure_dir()
        self._init_schema()

    def _ensure_dir(self):
        """Ensure the database directory exists."""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def _get_conn(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_schema(self):
        """Initialize the database schema."""
        conn = self._get_conn()
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT,
                    name TEXT,
                    initial_balance REAL NOT NULL DEFAULT 10000,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS trades (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,

                    -- Instrument
                    instrument_type TEXT NOT NULL,
                    instrument_name TEXT NOT NULL,
                    direction TEXT NOT NULL,

                    -- Prices & size
                    entry_price REAL NOT NULL,
                    exit_price REAL NOT NULL,
                    quantity REAL NOT NULL,
                    stop_loss REAL,
                    take_profit REAL,
                    position_size REAL,

                    -- Result
                    profit_loss REAL NOT NULL DEFAULT 0,
                    profit_loss_percentage REAL NOT NULL DEFAULT 0,
                    risk_reward_ratio REAL,

                    -- Timing
                    entry_date TEXT,
                    exit_date TEXT,
                    trade_date TEXT,
                    duration TEXT,

                    -- Metadata
                    setup_type TEXT,
                    timeframe TEXT,
                    notes TEXT DEFAULT '',
                    tags TEXT,
                    image_url TEXT,

                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS idx_trades_user ON trades(user_id);
                CREATE INDEX IF NOT EXISTS idx_trades_user_instrument
                    ON trades(user_id, instrument_type, instrument_name);
                CREATE INDEX IF NOT EXISTS idx_trades_entry_date ON trades(entry_date);
            """)
            conn.commit()
        finally:
            conn.close()

    # ==================== Users ====================

    def get_user(self, user_id: str) -> Optional[User]:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return User(**dict(row)) if row else None
        finally:
            conn.close()

    def ensure_user(self, user_id: str, email: Optional[str] = None, name: Optional[str] = None) -> User:
        """Return the user, creating it with the default balance on first sight."""
        user = self.get_user(user_id)
        if user:
            return user

        user = User(
            id=user_id,
            email=email,
            name=name,
            initial_balance=self.default_initial_balance,
        )
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT OR IGNORE INTO users (id, email, name, initial_balance, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (user.id, user.email, user.name, user.initial_balance, user.created_at, user.updated_at)
            )
            conn.commit()
        finally:
            conn.close()
        return self.get_user(user_id)

    def update_user(self, user_id: str, updates: Dict[str, Any]) -> Optional[User]:
        allowed = {k: v for k, v in updates.items() if k in ('email', 'name', 'initial_balance')}
        if not allowed:
            return self.get_user(user_id)

        allowed['updated_at'] = _now()
        set_clause = ', '.join(f"{k} = ?" for k in allowed)
        conn = self._get_conn()
        try:
            conn.execute(
                f"UPDATE users SET {set_clause} WHERE id = ?",
                list(allowed.values()) + [user_id]
            )
            conn.commit()
        finally:
            conn.close()
        return self.get_user(user_id)

    # ==================== Trades ====================

    def create_trade(self, trade: Trade) -> Trade:
        """Insert a new trade."""
        for name in DATE_FIELDS:
            setattr(trade, name, normalize_date(getattr(trade, name)))

        conn = self._get_conn()
        try:
            data = trade.to_dict()
            columns = ', '.join(data.keys())
            placeholders = ', '.join('?' * len(data))

            conn.execute(
                f"INSERT INTO trades ({columns}) VALUES ({placeholders})",
                list(data.values())
            )
            conn.commit()
            return trade
        finally:
            conn.close()

    def get_trade(self, trade_id: str) -> Optional[Trade]:
        """Get a single trade by ID."""
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM trades WHERE id = ?",
                (trade_id,)
            ).fetchone()

            if row:
                return Trade.from_dict(dict(row))
            return None
        finally:
            conn.close()

    def update_trade(self, trade_id: str, updates: Dict[str, Any]) -> Optional[Trade]:
        """Update a trade with the given fields."""
        editable = set(Trade.field_names()) - {'id', 'user_id', 'created_at', 'updated_at'}
        updates = {k: v for k, v in updates.items() if k in editable}

        for name in DATE_FIELDS:
            if name in updates:
                updates[name] = normalize_date(updates[name])
        if 'tags' in updates:
            updates['tags'] = json.dumps(list(updates['tags'] or []))

        updates['updated_at'] = _now()

        conn = self._get_conn()
        try:
            set_clause = ', '.join(f"{k} = ?" for k in updates.keys())
            params = list(updates.values()) + [trade_id]

            conn.execute(
                f"UPDATE trades SET {set_clause} WHERE id = ?",
                params
            )
            conn.commit()
        finally:
            conn.close()

        return self.get_trade(trade_id)

    def delete_trade(self, trade_id: str) -> bool:
        """Delete a trade."""
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "DELETE FROM trades WHERE id = ?",
                (trade_id,)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def _filter_clause(
        self,
        user_id: str,
        instrument_type: Optional[str] = None,
        instrument_name: Optional[str] = None,
        timeframe: Optional[str] = None,
        direction: Optional[str] = None,
        outcome: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Tuple[str, List[Any]]:
        clause = "WHERE user_id = ?"
        params: List[Any] = [user_id]

        if instrument_type:
            clause += " AND instrument_type = ?"
            params.append(instrument_type)

        if instrument_name:
            clause += " AND LOWER(instrument_name) LIKE ?"
            params.append(f"%{instrument_name.lower()}%")

        if timeframe:
            clause += " AND timeframe = ?"
            params.append(timeframe)

        if direction and direction != 'ALL':
            clause += " AND direction = ?"
            params.append(direction)

        if outcome and outcome != 'ALL':
            if outcome not in OUTCOME_CLAUSES:
                raise ValueError(f"Invalid outcome: {outcome}")
            clause += f" AND {OUTCOME_CLAUSES[outcome]}"

        start = _range_bound(start_date, end=False)
        if start:
            clause += " AND COALESCE(trade_date, entry_date) >= ?"
            params.append(start)

        end = _range_bound(end_date, end=True)
        if end:
            clause += " AND COALESCE(trade_date, entry_date) <= ?"
            params.append(end)

        return clause, params

    def list_trades(
        self,
        user_id: str,
        sort: str = '-entryDate',
        limit: Optional[int] = None,
        offset: int = 0,
        **filters
    ) -> List[Trade]:
        """List a user's trades with optional filters; no limit returns all."""
        clause, params = self._filter_clause(user_id, **filters)

        descending = sort.startswith('-')
        column = SORT_COLUMNS.get(sort.lstrip('-+'))
        if column is None:
            raise ValueError(f"Invalid sort field: {sort}")

        query = f"SELECT * FROM trades {clause} ORDER BY {column} {'DESC' if descending else 'ASC'}, created_at ASC"
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([int(limit), int(offset)])

        conn = self._get_conn()
        try:
            rows = conn.execute(query, params).fetchall()
            return [Trade.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def count_trades(self, user_id: str, **filters) -> int:
        clause, params = self._filter_clause(user_id, **filters)
        conn = self._get_conn()
        try:
            return conn.execute(f"SELECT COUNT(*) FROM trades {clause}", params).fetchone()[0]
        finally:
            conn.close()

    def net_profit_loss(self, user_id: str) -> float:
        """Sum of P&L across all of a user's trades."""
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT SUM(profit_loss) FROM trades WHERE user_id = ?",
                (user_id,)
            ).fetchone()
            return float(row[0] or 0)
        finally:
            conn.close()
