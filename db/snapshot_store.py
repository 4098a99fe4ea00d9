from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from db.models import MaterialForecast


def upsert_snapshot(session, material_id: int, values: dict) -> MaterialForecast:
    """
    Replace the active forecast of a material in one transaction: lock the
    current active row, deactivate it, insert the new active row.
    Rolls back and re-raises on database errors.
    """
    try:
        session.execute(
            select(MaterialForecast.id)
            .where(MaterialForecast.material_id == material_id, MaterialForecast.is_active.is_(True))
            .with_for_update()
        )
        # Executed before the insert so the partial unique index never sees two active rows
        session.execute(
            update(MaterialForecast)
            .where(MaterialForecast.material_id == material_id, MaterialForecast.is_active.is_(True))
            .values(is_active=False)
        )
        row = MaterialForecast(material_id=material_id, is_active=True, **values)
        session.add(row)
        session.flush()
        session.commit()
        return row
    except SQLAlchemyError:
        session.rollback()
        raise


def get_active_snapshot(session, material_id: int):
    return session.execute(
        select(MaterialForecast)
        .where(MaterialForecast.material_id == material_id, MaterialForecast.is_active.is_(True))
    ).scalar_one_or_none()


def list_active_snapshots(session) -> list:
    return list(
        session.execute(
            select(MaterialForecast)
            .where(MaterialForecast.is_active.is_(True))
            .order_by(MaterialForecast.days_until_stockout, MaterialForecast.material_id)
        ).scalars()
    )


def snapshot_to_dict(row: MaterialForecast) -> dict:
    def num(value):
        return round(float(value), 2) if value is not None else None

    return {
        "id": row.id,
        "material_id": row.material_id,
        "forecast_date": row.forecast_date.isoformat() if row.forecast_date else None,
        "forecast_period_start": row.forecast_period_start.isoformat() if row.forecast_period_start else None,
        "forecast_period_end": row.forecast_period_end.isoformat() if row.forecast_period_end else None,
        "forecast_days": row.forecast_days,
        "current_stock": num(row.current_stock),
        "daily_usage": num(row.daily_usage),
        "forecasted_usage": num(row.forecasted_usage),
        "projected_stock": num(row.projected_stock),
        "days_until_stockout": row.days_until_stockout,
        "status": row.status,
        "status_label": row.status_label,
        "needs_reorder": row.needs_reorder,
        "confidence_score": row.confidence_score,
        "confidence_level": row.confidence_level,
        "method": row.method,
        "method_details": row.method_details,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }
