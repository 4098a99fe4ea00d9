import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Sequence

from models.demand_model import DemandEstimate
from models.demand_source import BillOfMaterialsLine
from models.material_model import MaterialProfile
from models.stock_status_model import StockBasis, available_quantity, classify, status_label
from utils.date_utils import daterange
from utils.forecast_config import (
    STOCKOUT_SENTINEL, CONFIDENCE_UPPER, CONFIDENCE_LOWER,
    BASE_CONFIDENCE, HISTORY_CONFIDENCE_BONUS, DEPTH_CONFIDENCE_BONUS, CONFIDENCE_DEPTH_POINTS,
)


@dataclass(frozen=True)
class DailyProjection:
    date: date
    predicted_output: float
    total_material_usage: float

    def to_dict(self):
        return {
            "date": self.date.isoformat(),
            "predicted_output": round(self.predicted_output, 2),
            "total_material_usage": round(self.total_material_usage, 2),
        }


@dataclass(frozen=True)
class ForecastSummary:
    material_id: int
    material_name: str
    as_of: date
    forecast_days: int
    current_stock: float
    daily_usage: float
    forecasted_usage: float
    projected_stock: float
    projected_stock_upper: float
    projected_stock_lower: float
    confidence_upper: float
    confidence_lower: float
    days_until_stockout: int
    days_until_stockout_pessimistic: int
    days_until_stockout_optimistic: int
    stockout_date: date | None
    status: str
    status_label: str
    basis: str
    needs_reorder: bool
    confidence_score: int
    confidence_level: str
    method: str
    estimate: DemandEstimate
    daily: tuple = field(default=(), compare=False)

    @property
    def period_start(self) -> date:
        return self.as_of

    @property
    def period_end(self) -> date:
        return self.as_of + timedelta(days=self.forecast_days)

    def to_dict(self, include_daily=False):
        out = {
            "material_id": self.material_id,
            "material": self.material_name,
            "current_stock": round(self.current_stock, 2),
            "daily_usage": round(self.daily_usage, 2),
            "forecasted_usage": round(self.forecasted_usage, 2),
            "projected_stock": round(self.projected_stock, 2),
            "projected_stock_upper": round(self.projected_stock_upper, 2),
            "projected_stock_lower": round(self.projected_stock_lower, 2),
            "confidence_upper": round(self.confidence_upper, 2),
            "confidence_lower": round(self.confidence_lower, 2),
            "days_until_stockout": self.days_until_stockout,
            "stockout_date": self.stockout_date.isoformat() if self.stockout_date else None,
            "status": self.status,
            "status_label": self.status_label,
            "needs_reorder": self.needs_reorder,
            "confidence_score": self.confidence_score,
            "confidence_level": self.confidence_level,
            "method": self.method,
        }
        if include_daily:
            out["daily"] = [row.to_dict() for row in self.daily]
        return out

    def method_details(self) -> dict:
        e = self.estimate
        return {
            "basis": self.basis,
            "expected_usage": round(e.expected_usage, 4),
            "calculated_usage": round(e.calculated_usage, 4),
            "moving_avg_7": round(e.moving_avg_7, 4),
            "moving_avg_14": round(e.moving_avg_14, 4),
            "historical_avg": round(e.historical_avg, 4),
            "trend_slope": round(e.trend_slope, 4),
            "variance": round(e.variance, 4),
            "std_dev": round(e.std_dev, 4),
            "data_points": e.data_points,
            "anomalous": e.anomalous,
            "projected_stock_upper": round(self.projected_stock_upper, 2),
            "projected_stock_lower": round(self.projected_stock_lower, 2),
            "days_until_stockout_pessimistic": self.days_until_stockout_pessimistic,
            "days_until_stockout_optimistic": self.days_until_stockout_optimistic,
        }


def project_daily_usage(bom_lines: Sequence[BillOfMaterialsLine], baselines: dict, trends: dict,
                        forecast_days: int, start: date) -> list:
    """
    Day-by-day projection for one material over start+1 .. start+N.
    Each product's output drifts linearly from its baseline by trend * i / N
    and never goes below zero.
    """
    n = max(1, int(forecast_days))
    rows = []
    for i, day in enumerate(daterange(start + timedelta(days=1), start + timedelta(days=n)), start=1):
        output = 0.0
        usage = 0.0
        for line in bom_lines:
            predicted = max(0.0, baselines.get(line.product_id, 0.0) + trends.get(line.product_id, 0.0) * i / n)
            output += predicted
            usage += predicted * line.quantity_per_unit
        rows.append(DailyProjection(day, output, usage))
    return rows


def days_until_stockout(current_stock: float, daily_usage: float) -> int:
    if daily_usage <= 0:
        return STOCKOUT_SENTINEL
    days = math.floor(max(0.0, current_stock) / daily_usage)
    return int(min(STOCKOUT_SENTINEL, max(0, days)))


def confidence_score(data_points: int) -> int:
    score = BASE_CONFIDENCE
    if data_points > 0:
        score += HISTORY_CONFIDENCE_BONUS
    if data_points >= CONFIDENCE_DEPTH_POINTS:
        score += DEPTH_CONFIDENCE_BONUS
    return min(100, score)


def confidence_level(score: int) -> str:
    if score >= 90:
        return "high"
    if score >= 70:
        return "medium"
    return "low"


def summarize_forecast(
        material: MaterialProfile,
        current_stock: float,
        estimate: DemandEstimate,
        forecast_days: int,
        as_of: date,
        basis: StockBasis = StockBasis.PROJECTED,
        daily=(),
) -> ForecastSummary:
    # Every derived field uses the same two-decimal usage that gets stored
    usage = round(max(0.0, estimate.daily_usage), 2)
    forecasted = usage * forecast_days
    projected = current_stock - forecasted

    upper = forecasted * CONFIDENCE_UPPER
    lower = forecasted * CONFIDENCE_LOWER

    days = days_until_stockout(current_stock, usage)
    stockout_date = as_of + timedelta(days=days) if days < STOCKOUT_SENTINEL else None

    status = classify(
        available_quantity(current_stock, projected, basis),
        material.critical_stock,
        material.reorder_level,
        material.max_level,
    )
    score = confidence_score(estimate.data_points)

    return ForecastSummary(
        material_id=material.id,
        material_name=material.name,
        as_of=as_of,
        forecast_days=forecast_days,
        current_stock=current_stock,
        daily_usage=usage,
        forecasted_usage=forecasted,
        projected_stock=projected,
        projected_stock_upper=current_stock - lower,
        projected_stock_lower=current_stock - upper,
        confidence_upper=upper,
        confidence_lower=lower,
        days_until_stockout=days,
        days_until_stockout_pessimistic=days_until_stockout(current_stock, usage * CONFIDENCE_UPPER),
        days_until_stockout_optimistic=days_until_stockout(current_stock, usage * CONFIDENCE_LOWER),
        stockout_date=stockout_date,
        status=status,
        status_label=status_label(status),
        basis=basis.value,
        needs_reorder=projected <= material.reorder_level,
        confidence_score=score,
        confidence_level=confidence_level(score),
        method=estimate.method,
        estimate=estimate,
        daily=tuple(daily),
    )
