from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Union

import pandas as pd
from sqlalchemy import select

from db.connection import engine as default_engine
from db.models import InventoryTransaction, StockedOutputLog
from utils.date_utils import to_date, window_start
from utils.stock_constants import CONSUMPTION_CODES

STOCKED_OUTPUT = "stocked_output"
TRANSACTION_LEDGER = "transaction_ledger"


@dataclass(frozen=True)
class StockedOutputEvent:
    product_id: int
    date: date
    quantity_produced: float
    # ((material_id, quantity), ...); empty when the line did not record a breakdown
    materials_used: tuple = ()


@dataclass(frozen=True)
class LedgerEvent:
    material_id: int
    date: date
    quantity: float  # signed, outbound movements are negative
    transaction_type: str


ConsumptionEvent = Union[StockedOutputEvent, LedgerEvent]


@dataclass(frozen=True)
class ConsumptionRecord:
    material_id: int
    date: date
    quantity: float
    source: str


# ----------------------------------------------------------
# INGESTION BOUNDARY
# ----------------------------------------------------------
def _as_float(value) -> float:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return 0.0
    return float(value)


def stocked_output_event(row) -> StockedOutputEvent:
    """
    Build an event from an output-log row (mapping or pandas row).
    A missing breakdown becomes an empty tuple, missing quantities become 0.
    """
    breakdown = row.get("materials_used")
    if not isinstance(breakdown, (list, tuple)):
        breakdown = []
    materials = tuple(
        (int(item["material_id"]), abs(_as_float(item.get("quantity"))))
        for item in breakdown
        if item.get("material_id") is not None
    )
    return StockedOutputEvent(
        product_id=int(row["product_id"]),
        date=to_date(row["date"]),
        quantity_produced=max(0.0, _as_float(row.get("quantity_produced"))),
        materials_used=materials,
    )


def ledger_event(row) -> LedgerEvent:
    return LedgerEvent(
        material_id=int(row["material_id"]),
        date=to_date(row["timestamp"]),
        quantity=_as_float(row.get("quantity")),
        transaction_type=str(row.get("transaction_type") or ""),
    )


def to_consumption_records(event: ConsumptionEvent) -> list:
    if isinstance(event, StockedOutputEvent):
        return [
            ConsumptionRecord(material_id, event.date, qty, STOCKED_OUTPUT)
            for material_id, qty in event.materials_used
        ]
    if event.transaction_type in CONSUMPTION_CODES and event.quantity < 0:
        return [ConsumptionRecord(event.material_id, event.date, abs(event.quantity), TRANSACTION_LEDGER)]
    return []


# ----------------------------------------------------------
# AGGREGATION
# ----------------------------------------------------------
def _records_frame(events: Iterable[ConsumptionEvent]) -> pd.DataFrame:
    rows = [
        {"material_id": r.material_id, "date": r.date, "quantity": r.quantity, "source": r.source}
        for event in events
        for r in to_consumption_records(event)
    ]
    if not rows:
        return pd.DataFrame(columns=["material_id", "date", "quantity", "source"])
    return pd.DataFrame(rows).sort_values(["material_id", "date", "source"], kind="stable")


class ConsumptionHistory:
    """
    Per-material, per-day consumption merged from both sources.
    Only days with at least one record are present.
    """

    def __init__(self, events: Iterable[ConsumptionEvent]):
        df = _records_frame(events)
        if df.empty:
            self._daily = pd.Series(dtype=float)
        else:
            self._daily = df.groupby(["material_id", "date"], sort=True)["quantity"].sum()

    def material_ids(self) -> list:
        if self._daily.empty:
            return []
        return sorted(int(m) for m in self._daily.index.get_level_values("material_id").unique())

    def series(self, material_id: int) -> list:
        if self._daily.empty or material_id not in self._daily.index.get_level_values("material_id"):
            return []
        per_day = self._daily.xs(material_id, level="material_id")
        return [(d, float(q)) for d, q in per_day.items()]


def aggregate_consumption(events: Iterable[ConsumptionEvent], material_id: int) -> list:
    """Ordered (date, quantity) pairs for one material."""
    return ConsumptionHistory(events).series(material_id)


# ----------------------------------------------------------
# LOADERS
# ----------------------------------------------------------
def load_output_events(historical_days: int, as_of: date, engine=None, product_id: int | None = None):
    q = (
        select(
            StockedOutputLog.product_id,
            StockedOutputLog.date,
            StockedOutputLog.quantity_produced,
            StockedOutputLog.materials_used,
        )
        .where(StockedOutputLog.date >= window_start(as_of, historical_days))
        .where(StockedOutputLog.date <= as_of)
        .order_by(StockedOutputLog.date, StockedOutputLog.id)
    )
    if product_id is not None:
        q = q.where(StockedOutputLog.product_id == product_id)

    df = pd.read_sql(q, engine or default_engine)
    return [stocked_output_event(row) for row in df.to_dict("records")]


def load_ledger_events(historical_days: int, as_of: date, engine=None, material_id: int | None = None):
    start = datetime.combine(window_start(as_of, historical_days), time.min)
    end = datetime.combine(as_of + timedelta(days=1), time.min)
    q = (
        select(
            InventoryTransaction.material_id,
            InventoryTransaction.timestamp,
            InventoryTransaction.quantity,
            InventoryTransaction.transaction_type,
        )
        .where(InventoryTransaction.timestamp >= start)
        .where(InventoryTransaction.timestamp < end)
        .where(InventoryTransaction.transaction_type.in_(CONSUMPTION_CODES))
        .order_by(InventoryTransaction.timestamp, InventoryTransaction.id)
    )
    if material_id is not None:
        q = q.where(InventoryTransaction.material_id == material_id)

    df = pd.read_sql(q, engine or default_engine)
    return [ledger_event(row) for row in df.to_dict("records")]


def load_consumption_series(material_id: int, historical_days: int, as_of: date, engine=None) -> list:
    """
    Daily consumption for one material over [as_of - historical_days, as_of].
    Pure read; sparse (no zero back-fill).
    """
    events = load_output_events(historical_days, as_of, engine)
    events += load_ledger_events(historical_days, as_of, engine, material_id=material_id)
    return aggregate_consumption(events, material_id)
