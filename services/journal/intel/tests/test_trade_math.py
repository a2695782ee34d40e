"""Per-trade derived values."""

import pytest

from services.journal.intel.trade_math import (
    derive_risk_reward_ratio,
    holding_duration_label,
    profit_loss_percentage,
)


class TestProfitLossPercentage:
    def test_against_balance(self):
        assert profit_loss_percentage(250, 10000) == 2.5

    def test_rounds_to_four_places(self):
        assert profit_loss_percentage(1, 3) == 33.3333

    def test_non_positive_balance(self):
        assert profit_loss_percentage(100, 0) == 0
        assert profit_loss_percentage(100, -50) == 0


class TestDurationLabel:
    def test_hours_and_minutes(self):
        assert holding_duration_label("2025-01-01T09:00:00", "2025-01-01T14:45:00") == "5h 45m"

    def test_exactly_one_day_stays_in_hours(self):
        assert holding_duration_label("2025-01-01T00:00:00", "2025-01-02T00:00:00") == "24h 0m"

    def test_days_and_hours(self):
        assert holding_duration_label("2025-01-01T00:00:00", "2025-01-03T05:30:00") == "2d 5h"

    def test_missing_dates(self):
        assert holding_duration_label(None, "2025-01-01T00:00:00") is None
        assert holding_duration_label("2025-01-01T00:00:00", "") is None


class TestRiskReward:
    def test_long(self):
        assert derive_risk_reward_ratio('LONG', 100, 130, 90) == 3.0

    def test_short(self):
        assert derive_risk_reward_ratio('SHORT', 100, 85, 110) == 1.5

    def test_losing_trade_is_negative(self):
        assert derive_risk_reward_ratio('LONG', 100, 95, 90) == -0.5

    @pytest.mark.parametrize("args", [
        ('LONG', 100, 130, 100),   # zero risk
        ('LONG', 100, 130, 105),   # stop above entry on a long
        ('SHORT', 100, 90, 95),    # stop below entry on a short
        ('LONG', 100, 130, None),
        (None, 100, 130, 90),
    ])
    def test_undefined(self, args):
        assert derive_risk_reward_ratio(*args) is None
