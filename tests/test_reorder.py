from datetime import date, timedelta

import pytest

from models.material_model import MaterialProfile
from models.reorder_model import (
    CRITICAL, HIGH, LOW, MEDIUM,
    effective_lead_time, max_level, recommend_replenishment, reorder_date, reorder_point, safety_stock,
    suggested_order_quantity, urgency_for,
)

TODAY = date(2024, 5, 31)


class TestSizing:

    def test_safety_stock_from_variability(self):
        # 1.65 x 2 x sqrt(7 + 2)
        assert safety_stock(10, 2, 7, 2) == pytest.approx(9.9)

    def test_safety_stock_fallback_without_variance(self):
        assert safety_stock(10, 0, 7, 2) == pytest.approx(14.0)

    def test_reorder_point_manual_level_only_raises(self):
        assert reorder_point(10, 7, 2, 9.9) == pytest.approx(99.9)
        assert reorder_point(10, 7, 2, 9.9, manual_reorder_level=150) == 150
        assert reorder_point(10, 7, 2, 9.9, manual_reorder_level=50) == pytest.approx(99.9)

    def test_max_level(self):
        assert max_level(99.9, 10, 7, configured_max=500) == 500
        assert max_level(99.9, 10, 7) == pytest.approx(239.9)

    def test_no_order_when_comfortably_stocked(self):
        assert suggested_order_quantity(10, 300, 99.9, 239.9, 7, 2, days_until_stockout=30) == 0.0

    def test_order_is_largest_candidate(self):
        # to max: 239.9 - 50 + 70; cover lead time: 49.9 + 160; minimum: 90
        qty = suggested_order_quantity(10, 50, 99.9, 239.9, 7, 2, days_until_stockout=5)
        assert qty == pytest.approx(259.9)

    def test_short_runway_triggers_order_above_reorder_point(self):
        qty = suggested_order_quantity(10, 120, 99.9, 239.9, 7, 2, days_until_stockout=8)
        assert qty > 0


class TestUrgency:

    @pytest.mark.parametrize("days,tier", [(-1, CRITICAL), (0, CRITICAL), (1, HIGH), (7, HIGH),
                                           (8, MEDIUM), (14, MEDIUM), (15, LOW), (999, LOW)])
    def test_tiers(self, days, tier):
        assert urgency_for(days) == tier

    def test_expedited_lead_time_has_floor(self):
        assert effective_lead_time(7, CRITICAL) == 4
        assert effective_lead_time(7, HIGH) == 5
        assert effective_lead_time(7, MEDIUM) == 7
        assert effective_lead_time(2, CRITICAL) == 1


class TestReorderDate:

    def test_today_when_at_reorder_point(self):
        assert reorder_date(TODAY, 100, 100, 10, 7) == TODAY

    def test_none_without_usage(self):
        assert reorder_date(TODAY, 300, 100, 0, 7) is None

    def test_future_date(self):
        # 20 days until the reorder point, minus a 7 day lead time
        assert reorder_date(TODAY, 300, 100, 10, 7) == TODAY + timedelta(days=13)

    def test_never_in_the_past(self):
        assert reorder_date(TODAY, 120, 100, 10, 7) == TODAY


class TestRecommendation:

    def test_recommend_replenishment(self):
        material = MaterialProfile(id=1, code="PLY", name="Plywood", unit_cost=2.5,
                                   lead_time_days=7, lead_time_variability=2)
        rec = recommend_replenishment(material, 10, 0, current_stock=100, projected_stock=-200,
                                      days_until_stockout=10, today=TODAY)
        assert rec.safety_stock == pytest.approx(14.0)
        assert rec.reorder_point == pytest.approx(104.0)
        assert rec.max_level == pytest.approx(244.0)
        assert rec.suggested_order_qty == pytest.approx(514.0)
        assert rec.urgency == MEDIUM
        assert rec.effective_lead_time == 7
        assert rec.reorder_date == TODAY
        assert rec.needs_reorder
        assert rec.estimated_cost == pytest.approx(1285.0)
        assert rec.days_until_reorder == pytest.approx(-0.4)

        out = rec.to_dict()
        assert out["recommended_quantity"] == 514.0
        assert out["estimated_cost"] == 1285.0
        assert out["reorder_date"] == "2024-05-31"

    def test_zero_usage_is_non_negative(self):
        material = MaterialProfile(id=2, code="X", name="X")
        rec = recommend_replenishment(material, 0, 0, 50, 50, 999, TODAY)
        assert rec.safety_stock == 0.0
        assert rec.reorder_point == 0.0
        assert rec.suggested_order_qty == 0.0
        assert rec.reorder_date is None
