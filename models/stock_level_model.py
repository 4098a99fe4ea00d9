import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from db.models import StockLevel
from models.consumption_model import load_ledger_events, to_consumption_records
from models.material_model import load_materials, load_stock_snapshot
from models.projection_model import days_until_stockout
from models.stock_status_model import REORDER_STATUSES, StockBasis, available_quantity, classify
from utils.date_utils import utcnow
from utils.stock_constants import STOCK_LEVEL_LOOKBACK_DAYS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockLevelFigures:
    material_id: int
    quantity_on_hand: float
    quantity_reserved: float
    available_quantity: float
    total_value: float
    daily_usage: float
    days_until_stockout: int
    stock_status: str
    needs_reorder: bool


def ledger_daily_usage(ledger_events) -> dict:
    """
    Average consumption per day with consumption, per material.
    Days without any consumption do not dilute the average.
    """
    totals = defaultdict(float)
    days = defaultdict(set)
    for event in ledger_events:
        for record in to_consumption_records(event):
            totals[record.material_id] += record.quantity
            days[record.material_id].add(record.date)
    return {mid: totals[mid] / len(days[mid]) for mid in totals if days[mid]}


def compute_stock_level(material, position, daily_usage: float) -> StockLevelFigures:
    # Sync has no projection: status is judged on what is available now
    available = available_quantity(position.available, position.available, StockBasis.CURRENT)
    status = classify(available, material.critical_stock, material.reorder_level, material.max_level)
    return StockLevelFigures(
        material_id=material.id,
        quantity_on_hand=position.on_hand,
        quantity_reserved=position.reserved,
        available_quantity=available,
        total_value=position.on_hand * material.unit_cost,
        daily_usage=daily_usage,
        days_until_stockout=days_until_stockout(available, daily_usage),
        stock_status=status,
        needs_reorder=status in REORDER_STATUSES,
    )


def sync_stock_levels(session, as_of: date | None = None, lookback_days: int = STOCK_LEVEL_LOOKBACK_DAYS) -> list:
    """
    Recompute stock_levels for every material in a single transaction.
    Any database error rolls back the whole sync and is re-raised.
    """
    as_of = as_of or date.today()
    try:
        conn = session.connection()
        materials = load_materials(conn)
        stock = load_stock_snapshot(conn)
        usage = ledger_daily_usage(load_ledger_events(lookback_days, as_of, conn))

        existing = {
            row.material_id: row
            for row in session.execute(select(StockLevel)).scalars()
        }
        now = utcnow()
        figures = []
        for mid in sorted(materials):
            f = compute_stock_level(materials[mid], stock.position(mid), usage.get(mid, 0.0))
            row = existing.get(mid)
            if row is None:
                row = StockLevel(material_id=mid)
                session.add(row)
            row.quantity_on_hand = round(f.quantity_on_hand, 2)
            row.quantity_reserved = round(f.quantity_reserved, 2)
            row.available_quantity = round(f.available_quantity, 2)
            row.total_value = round(f.total_value, 2)
            row.daily_usage = round(f.daily_usage, 2)
            row.days_until_stockout = f.days_until_stockout
            row.stock_status = f.stock_status
            row.needs_reorder = f.needs_reorder
            row.last_calculated_at = now
            figures.append(f)

        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Stock level sync failed, rolled back: {e}")
        raise

    logger.info(
        f"Stock levels synced for {len(figures)} materials, "
        f"{sum(1 for f in figures if f.needs_reorder)} need reorder"
    )
    return figures
