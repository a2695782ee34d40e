"""SQLite store: users, trades and filtered listing."""

import pytest

from services.journal.intel.db import JournalDB, normalize_date
from services.journal.intel.models import Trade


@pytest.fixture
def db(tmp_path):
    store = JournalDB(str(tmp_path / "journal.db"), default_initial_balance=5000)
    store.ensure_user("u1")
    store.ensure_user("u2")
    return store


def _trade(user_id="u1", **kwargs) -> Trade:
    defaults = dict(
        id=Trade.new_id(),
        user_id=user_id,
        instrument_type="FOREX",
        instrument_name="EURUSD",
        direction="LONG",
        entry_price=1.1,
        exit_price=1.2,
        quantity=1000,
        profit_loss=100.0,
        entry_date="2025-01-10T09:00:00",
    )
    defaults.update(kwargs)
    return Trade(**defaults)


class TestUsers:
    def test_ensure_user_uses_default_balance(self, db):
        assert db.get_user("u1").initial_balance == 5000

    def test_ensure_user_is_idempotent(self, db):
        db.update_user("u1", {"initial_balance": 7500})
        assert db.ensure_user("u1").initial_balance == 7500

    def test_update_user_ignores_unknown_fields(self, db):
        user = db.update_user("u1", {"name": "Ada", "id": "hijack"})
        assert user.id == "u1"
        assert user.name == "Ada"


class TestTrades:
    def test_round_trip(self, db):
        trade = _trade(tags=["breakout", "london"], risk_reward_ratio=2.0)
        db.create_trade(trade)

        loaded = db.get_trade(trade.id)
        assert loaded.tags == ["breakout", "london"]
        assert loaded.risk_reward_ratio == 2.0
        assert loaded.notes == ''

    def test_dates_stored_as_naive_utc(self, db):
        trade = db.create_trade(_trade(entry_date="2025-01-10T09:00:00+02:00"))
        assert db.get_trade(trade.id).entry_date == "2025-01-10T07:00:00"

    def test_update_trade(self, db):
        trade = db.create_trade(_trade())
        updated = db.update_trade(trade.id, {"profit_loss": -20.0, "tags": ["revenge"], "user_id": "u2"})
        assert updated.profit_loss == -20.0
        assert updated.tags == ["revenge"]
        assert updated.user_id == "u1"

    def test_delete_trade(self, db):
        trade = db.create_trade(_trade())
        assert db.delete_trade(trade.id) is True
        assert db.get_trade(trade.id) is None
        assert db.delete_trade(trade.id) is False

    def test_list_scoped_to_user(self, db):
        db.create_trade(_trade("u1"))
        db.create_trade(_trade("u2"))
        assert len(db.list_trades("u1")) == 1

    def test_filters(self, db):
        db.create_trade(_trade(instrument_name="EURUSD", profit_loss=10, timeframe="H1"))
        db.create_trade(_trade(instrument_name="GBPUSD", profit_loss=-5, direction="SHORT"))
        db.create_trade(_trade(instrument_type="CRYPTO", instrument_name="BTCUSD", profit_loss=0))

        assert len(db.list_trades("u1", instrument_type="FOREX")) == 2
        assert len(db.list_trades("u1", instrument_name="usd")) == 3
        assert len(db.list_trades("u1", instrument_name="eur")) == 1
        assert len(db.list_trades("u1", timeframe="H1")) == 1
        assert len(db.list_trades("u1", direction="SHORT")) == 1
        assert [t.profit_loss for t in db.list_trades("u1", outcome="WIN")] == [10]
        assert [t.profit_loss for t in db.list_trades("u1", outcome="LOSS")] == [-5]
        assert [t.profit_loss for t in db.list_trades("u1", outcome="BREAKEVEN")] == [0]

    def test_date_range_uses_trade_date_then_entry_date(self, db):
        db.create_trade(_trade(entry_date="2025-01-05T10:00:00"))
        db.create_trade(_trade(entry_date="2025-01-31T18:00:00"))
        db.create_trade(_trade(entry_date="2025-03-01T10:00:00", trade_date="2025-01-20T10:00:00"))

        in_jan = db.list_trades("u1", start_date="2025-01-01", end_date="2025-01-31")
        assert len(in_jan) == 3
        assert len(db.list_trades("u1", start_date="2025-01-10")) == 2

    def test_invalid_date_filter(self, db):
        with pytest.raises(ValueError):
            db.list_trades("u1", start_date="not-a-date")

    def test_sort_and_pagination(self, db):
        for day in (3, 1, 2):
            db.create_trade(_trade(entry_date=f"2025-01-0{day}T00:00:00", profit_loss=day))

        assert [t.profit_loss for t in db.list_trades("u1", sort="entryDate")] == [1, 2, 3]
        assert [t.profit_loss for t in db.list_trades("u1", sort="-entryDate", limit=2)] == [3, 2]
        assert [t.profit_loss for t in db.list_trades("u1", sort="-entryDate", limit=2, offset=2)] == [1]
        assert db.count_trades("u1") == 3

    def test_invalid_sort(self, db):
        with pytest.raises(ValueError):
            db.list_trades("u1", sort="-password")

    def test_net_profit_loss(self, db):
        db.create_trade(_trade(profit_loss=120))
        db.create_trade(_trade(profit_loss=-20))
        db.create_trade(_trade("u2", profit_loss=999))
        assert db.net_profit_loss("u1") == pytest.approx(100)
        assert db.net_profit_loss("nobody") == 0


def test_normalize_date():
    assert normalize_date("2025-01-01T00:00:00Z") == "2025-01-01T00:00:00"
    assert normalize_date(None) is None
    assert normalize_date("garbage") is None
