from datetime import date, timedelta

import pytest

from models.demand_model import estimate_demand
from models.demand_source import BillOfMaterialsLine
from models.material_model import MaterialProfile
from models.projection_model import (
    confidence_level, confidence_score, days_until_stockout, project_daily_usage, summarize_forecast,
)
from models.stock_status_model import (
    CRITICAL, IN_STOCK, LOW_STOCK, OUT_OF_STOCK, OVERSTOCKED, StockBasis, available_quantity, classify,
    status_label,
)

TODAY = date(2024, 5, 31)


def _estimate(daily_usage, points=0):
    series = [(TODAY - timedelta(days=i), daily_usage) for i in range(points)]
    return estimate_demand(1, series, authoritative_usage=daily_usage if daily_usage > 0 else None)


class TestClassifier:

    def test_scenario_e_low_stock(self):
        assert classify(50, 0, 40, 100) == LOW_STOCK

    def test_out_of_stock_beats_critical(self):
        assert classify(0, 10, 20, 100) == OUT_OF_STOCK
        assert classify(-5, 10, 20, 100) == OUT_OF_STOCK

    @pytest.mark.parametrize("qty,status", [(5, CRITICAL), (10, CRITICAL), (20, LOW_STOCK),
                                            (60, IN_STOCK), (100, IN_STOCK), (101, OVERSTOCKED)])
    def test_priority(self, qty, status):
        assert classify(qty, 10, 20, 100) == status

    def test_unset_thresholds_are_skipped(self):
        assert classify(1, 0, 0, 0) == IN_STOCK

    def test_basis_is_explicit(self):
        assert available_quantity(100, -50, StockBasis.PROJECTED) == -50
        assert available_quantity(100, -50, StockBasis.CURRENT) == 100

    def test_labels(self):
        assert status_label(OUT_OF_STOCK) == "Out of Stock"
        assert status_label(LOW_STOCK) == "Low Stock"


class TestProjector:

    def test_daily_rows_apply_trend_gradually(self):
        rows = project_daily_usage([BillOfMaterialsLine(1, 9, 2.0)], {1: 10.0}, {1: 3.0}, 3, TODAY)
        assert [r.date for r in rows] == [TODAY + timedelta(days=i) for i in (1, 2, 3)]
        assert [r.predicted_output for r in rows] == pytest.approx([11.0, 12.0, 13.0])
        assert [r.total_material_usage for r in rows] == pytest.approx([22.0, 24.0, 26.0])

    def test_predicted_output_never_negative(self):
        rows = project_daily_usage([BillOfMaterialsLine(1, 9, 2.0)], {1: 1.0}, {1: -5.0}, 1, TODAY)
        assert rows[0].predicted_output == 0.0
        assert rows[0].total_material_usage == 0.0

    def test_scenario_a(self):
        material = MaterialProfile(id=1, code="M", name="M", critical_stock=10, reorder_level=20)
        summary = summarize_forecast(material, 100, _estimate(5), 30, TODAY)
        assert summary.forecasted_usage == pytest.approx(150)
        assert summary.projected_stock == pytest.approx(-50)
        assert summary.status == OUT_OF_STOCK
        assert summary.needs_reorder
        assert summary.days_until_stockout == 20
        assert summary.stockout_date == TODAY + timedelta(days=20)

    def test_untracked_material_judged_on_current_stock(self):
        material = MaterialProfile(id=1, code="M", name="M", critical_stock=10, reorder_level=20)
        summary = summarize_forecast(material, 100, _estimate(5), 30, TODAY, StockBasis.CURRENT)
        assert summary.status == IN_STOCK
        assert summary.basis == "current"

    @pytest.mark.parametrize("horizon", [1, 7, 30, 90, 365])
    def test_projected_stock_identity(self, horizon):
        material = MaterialProfile(id=1, code="M", name="M")
        summary = summarize_forecast(material, 1234.56, _estimate(3.7), horizon, TODAY)
        assert summary.projected_stock == summary.current_stock - summary.forecasted_usage

    def test_confidence_bands(self):
        material = MaterialProfile(id=1, code="M", name="M")
        summary = summarize_forecast(material, 200, _estimate(4), 10, TODAY)
        assert summary.confidence_upper == pytest.approx(46.0)
        assert summary.confidence_lower == pytest.approx(34.0)
        assert summary.projected_stock_lower == pytest.approx(154.0)
        assert summary.projected_stock_upper == pytest.approx(166.0)
        assert summary.days_until_stockout_pessimistic <= summary.days_until_stockout
        assert summary.days_until_stockout_optimistic >= summary.days_until_stockout

    def test_zero_usage_hits_sentinel(self):
        material = MaterialProfile(id=1, code="M", name="M")
        summary = summarize_forecast(material, 50, _estimate(0), 30, TODAY)
        assert summary.daily_usage == 0.0
        assert summary.forecasted_usage == 0.0
        assert summary.days_until_stockout == 999
        assert summary.stockout_date is None

    def test_days_until_stockout(self):
        assert days_until_stockout(100, 3) == 33
        assert days_until_stockout(-10, 5) == 0
        assert days_until_stockout(1_000_000, 1) == 999
        assert days_until_stockout(10, 0) == 999

    def test_confidence(self):
        assert confidence_score(0) == 70
        assert confidence_score(5) == 90
        assert confidence_score(14) == 100
        assert confidence_level(100) == "high"
        assert confidence_level(70) == "medium"
        assert confidence_level(50) == "low"

    def test_serialization_rounds_to_two_decimals(self):
        material = MaterialProfile(id=1, code="M", name="M")
        out = summarize_forecast(material, 10, _estimate(1 / 3), 30, TODAY).to_dict()
        assert out["daily_usage"] == 0.33
        assert out["forecasted_usage"] == 9.9
