from dataclasses import dataclass
from types import MappingProxyType

import pandas as pd
from sqlalchemy import func, select

from db.connection import engine as default_engine
from db.models import InventoryRecord, Material, StockLevel
from utils.forecast_config import LEAD_TIME_DAYS, LEAD_TIME_VARIABILITY


@dataclass(frozen=True)
class MaterialProfile:
    id: int
    code: str
    name: str
    unit_of_measure: str = "pcs"
    unit_cost: float = 0.0
    critical_stock: float = 0.0
    reorder_level: float = 0.0
    max_level: float = 0.0
    lead_time_days: int = LEAD_TIME_DAYS
    lead_time_variability: int = LEAD_TIME_VARIABILITY


@dataclass(frozen=True)
class StockPosition:
    on_hand: float = 0.0
    reserved: float = 0.0

    @property
    def available(self) -> float:
        return self.on_hand - self.reserved


class StockSnapshot:
    """
    Stock figures frozen at the start of a run. Every step of one run reads
    from the same snapshot, so concurrent stock movements cannot skew it.
    """

    def __init__(self, positions: dict):
        self._positions = MappingProxyType(dict(positions))

    def position(self, material_id: int) -> StockPosition:
        return self._positions.get(material_id, StockPosition())

    def on_hand(self, material_id: int) -> float:
        return self.position(material_id).on_hand

    def __contains__(self, material_id) -> bool:
        return material_id in self._positions

    def __len__(self):
        return len(self._positions)


def _f(value, default=0.0) -> float:
    if value is None or pd.isna(value):
        return float(default)
    return float(value)


def load_materials(engine=None) -> dict:
    df = pd.read_sql(select(Material).order_by(Material.id), engine or default_engine)
    materials = {}
    for r in df.to_dict("records"):
        materials[int(r["id"])] = MaterialProfile(
            id=int(r["id"]),
            code=str(r["code"]),
            name=str(r["name"]),
            unit_of_measure=r["unit_of_measure"] or "pcs",
            unit_cost=_f(r["unit_cost"]),
            critical_stock=_f(r["critical_stock"]),
            reorder_level=_f(r["reorder_level"]),
            max_level=_f(r["max_level"]),
            lead_time_days=int(_f(r["lead_time_days"], LEAD_TIME_DAYS)),
            lead_time_variability=int(_f(r["lead_time_variability"], LEAD_TIME_VARIABILITY)),
        )
    return materials


def load_stock_snapshot(engine=None) -> StockSnapshot:
    q = (
        select(
            InventoryRecord.material_id,
            func.sum(InventoryRecord.current_stock).label("on_hand"),
            func.sum(InventoryRecord.quantity_reserved).label("reserved"),
        )
        .group_by(InventoryRecord.material_id)
    )
    df = pd.read_sql(q, engine or default_engine)
    return StockSnapshot({
        int(r["material_id"]): StockPosition(_f(r["on_hand"]), _f(r["reserved"]))
        for r in df.to_dict("records")
    })


def load_authoritative_usage(engine=None) -> dict:
    """Published daily usage per material (stock_levels), positive values only."""
    q = select(StockLevel.material_id, StockLevel.daily_usage).where(StockLevel.daily_usage > 0)
    df = pd.read_sql(q, engine or default_engine)
    return {int(r["material_id"]): float(r["daily_usage"]) for r in df.to_dict("records")}
