import math
from dataclasses import dataclass
from datetime import date, timedelta

from models.material_model import MaterialProfile
from utils.forecast_config import (
    Z95, SAFETY_STOCK_FALLBACK, MAX_LEVEL_LEAD_TIMES, BUFFER_DAYS, EXPEDITE_DAYS, MIN_LEAD_TIME,
)

CRITICAL = "critical"
HIGH = "high"
MEDIUM = "medium"
LOW = "low"
URGENCY_TIERS = (CRITICAL, HIGH, MEDIUM, LOW)


@dataclass(frozen=True)
class ReplenishmentRecommendation:
    material_id: int
    material_name: str
    current_stock: float
    projected_stock: float
    daily_usage: float
    safety_stock: float
    reorder_point: float
    max_level: float
    suggested_order_qty: float
    urgency: str
    lead_time_days: int
    effective_lead_time: int
    days_until_stockout: int
    days_until_reorder: float
    reorder_date: date | None
    needs_reorder: bool
    unit_cost: float

    @property
    def estimated_cost(self) -> float:
        return self.suggested_order_qty * self.unit_cost

    def to_dict(self):
        return {
            "material_id": self.material_id,
            "material": self.material_name,
            "current_stock": round(self.current_stock, 2),
            "projected_stock": round(self.projected_stock, 2),
            "daily_usage": round(self.daily_usage, 2),
            "safety_stock": round(self.safety_stock, 2),
            "reorder_point": round(self.reorder_point, 2),
            "max_level": round(self.max_level, 2),
            "recommended_quantity": round(self.suggested_order_qty, 2),
            "urgency": self.urgency,
            "lead_time_days": self.lead_time_days,
            "effective_lead_time": self.effective_lead_time,
            "days_until_stockout": self.days_until_stockout,
            "days_until_reorder": round(self.days_until_reorder, 1),
            "reorder_date": self.reorder_date.isoformat() if self.reorder_date else None,
            "needs_reorder": self.needs_reorder,
            "unit_cost": round(self.unit_cost, 2),
            "estimated_cost": round(self.estimated_cost, 2),
        }


def safety_stock(daily_usage: float, std_dev: float, lead_time: int, variability: int, z: float = Z95) -> float:
    # Safety Stock = z * std * sqrt(LT + LT variability)
    if std_dev > 0:
        return max(0.0, z * std_dev * math.sqrt(max(0, lead_time + variability)))
    return max(0.0, daily_usage * lead_time * SAFETY_STOCK_FALLBACK)


def reorder_point(daily_usage: float, lead_time: int, variability: int, safety: float,
                  manual_reorder_level: float = 0.0) -> float:
    computed = max(0.0, daily_usage * (lead_time + variability) + safety)
    # A manual level only ever raises the reorder point
    return max(computed, manual_reorder_level or 0.0)


def max_level(reorder_pt: float, daily_usage: float, lead_time: int, configured_max: float = 0.0) -> float:
    if configured_max and configured_max > 0:
        return configured_max
    return reorder_pt + daily_usage * lead_time * MAX_LEVEL_LEAD_TIMES


def urgency_for(days_until_stockout: int) -> str:
    if days_until_stockout <= 0:
        return CRITICAL
    if days_until_stockout <= 7:
        return HIGH
    if days_until_stockout <= 14:
        return MEDIUM
    return LOW


def effective_lead_time(lead_time: int, urgency: str) -> int:
    return max(MIN_LEAD_TIME, lead_time - EXPEDITE_DAYS.get(urgency, 0))


def suggested_order_quantity(daily_usage: float, projected_stock: float, reorder_pt: float, max_lvl: float,
                             lead_time: int, variability: int, days_until_stockout: int) -> float:
    """
    Zero unless the projected position crosses the reorder point or stock runs
    out within the lead time; then the largest of: top-up to max level plus a
    buffer, reorder-point gap plus lead-time-and-buffer demand, and the
    minimum lead-time order.
    """
    cover_days = lead_time + variability
    if projected_stock > reorder_pt and days_until_stockout > cover_days:
        return 0.0

    buffer_stock = daily_usage * BUFFER_DAYS
    to_max_level = max_lvl - projected_stock + buffer_stock
    cover_lead_time = (reorder_pt - projected_stock) + daily_usage * (cover_days + BUFFER_DAYS)
    minimum_order = daily_usage * cover_days
    return max(0.0, to_max_level, cover_lead_time, minimum_order)


def days_until_reorder(current_stock: float, reorder_pt: float, daily_usage: float) -> float:
    if daily_usage <= 0:
        return 0.0
    return (current_stock - reorder_pt) / daily_usage


def reorder_date(today: date, current_stock: float, reorder_pt: float, daily_usage: float, lead_time: int):
    if current_stock <= reorder_pt:
        return today
    if daily_usage <= 0:
        return None
    offset = math.ceil(days_until_reorder(current_stock, reorder_pt, daily_usage) - lead_time)
    return today + timedelta(days=max(0, offset))


def recommend_replenishment(
        material: MaterialProfile,
        daily_usage: float,
        std_dev: float,
        current_stock: float,
        projected_stock: float,
        days_until_stockout: int,
        today: date,
) -> ReplenishmentRecommendation:
    """
    Safety stock, reorder point, max level, order quantity, urgency and
    reorder date for one material.
    """
    usage = max(0.0, float(daily_usage))
    lt = int(material.lead_time_days)
    ltv = int(material.lead_time_variability)

    safety = safety_stock(usage, std_dev, lt, ltv)
    rop = reorder_point(usage, lt, ltv, safety, material.reorder_level)
    max_lvl = max_level(rop, usage, lt, material.max_level)
    qty = suggested_order_quantity(usage, projected_stock, rop, max_lvl, lt, ltv, days_until_stockout)

    urgency = urgency_for(days_until_stockout)
    lead_time = effective_lead_time(lt, urgency)

    return ReplenishmentRecommendation(
        material_id=material.id,
        material_name=material.name,
        current_stock=current_stock,
        projected_stock=projected_stock,
        daily_usage=usage,
        safety_stock=safety,
        reorder_point=rop,
        max_level=max_lvl,
        suggested_order_qty=qty,
        urgency=urgency,
        lead_time_days=lt,
        effective_lead_time=lead_time,
        days_until_stockout=days_until_stockout,
        days_until_reorder=days_until_reorder(current_stock, rop, usage),
        reorder_date=reorder_date(today, current_stock, rop, usage, lead_time),
        needs_reorder=projected_stock <= rop,
        unit_cost=material.unit_cost,
    )
