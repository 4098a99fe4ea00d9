import logging

import click
import pandas as pd
from flask import Flask, Response, request, jsonify
from flask_cors import CORS
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import config
from db.connection import engine, SessionLocal
from db.models import Base
from db.snapshot_store import get_active_snapshot, list_active_snapshots, snapshot_to_dict
from models.demand_source import COMBINED, SOURCE_KINDS
from models.forecast_pipeline import ForecastParameterError, build_replenishment_schedule, run_forecasts
from models.stock_level_model import sync_stock_levels
from utils.date_utils import to_date

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger("MaterialForecast")

app = Flask(__name__)
CORS(app)

# Database initialization and health check
try:
    Base.metadata.create_all(bind=engine)
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("Database connection established successfully.")
except SQLAlchemyError as e:
    logger.error(f"Database connection failed: {e}")
else:
    logger.info("Forecast tables ensured in database.")

logger.info("Material forecast service initialized.")


def _error(message, code):
    return jsonify({"status": "error", "message": message}), code


def _run_parameters(data):
    """Pipeline arguments from a JSON body or query string."""
    as_of = data.get("as_of")
    if as_of:
        try:
            as_of = to_date(as_of)
        except ValueError:
            raise ForecastParameterError(f"as_of must be an ISO date, got {as_of!r}")
    return {
        "as_of": as_of or None,
        "source": data.get("source", COMBINED),
        "forecast_days": data.get("forecast_days", config.FORECAST_DAYS),
        "historical_days": data.get("historical_days", config.HISTORICAL_DAYS),
    }


@app.route("/api/v1/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"})


@app.route("/api/v1/forecast/materials", methods=["POST"])
def forecast_materials():
    """
    Body (all optional):
    {
      "source": "combined",      # stocked | made_to_order | combined
      "forecast_days": 30,
      "historical_days": 30,
      "as_of": "2024-05-01",
      "persist": true,
      "include_daily": false
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        run = run_forecasts(persist=bool(data.get("persist", True)), **_run_parameters(data))
    except ForecastParameterError as e:
        return _error(str(e), 400)
    except SQLAlchemyError as e:
        logger.error(f"Forecast run failed: {e}")
        return _error(str(e), 500)

    payload = run.to_dict(include_daily=bool(data.get("include_daily", False)))
    payload["status"] = "success"
    return jsonify(payload)


@app.route("/api/v1/forecast/materials", methods=["GET"])
def forecast_materials_get():
    db = SessionLocal()
    try:
        rows = list_active_snapshots(db)
        return jsonify([snapshot_to_dict(r) for r in rows])
    finally:
        db.close()


@app.route("/api/v1/forecast/materials/<int:material_id>", methods=["GET"])
def forecast_material_get(material_id):
    db = SessionLocal()
    try:
        row = get_active_snapshot(db, material_id)
        if row is None:
            return _error(f"No active forecast for material {material_id}", 404)
        return jsonify(snapshot_to_dict(row))
    finally:
        db.close()


def _schedule_from_query():
    run = run_forecasts(persist=False, **_run_parameters(request.args))
    schedule = build_replenishment_schedule(run.results)
    schedule["as_of"] = run.as_of.isoformat()
    schedule["diagnostics"] = [d.to_dict() for d in run.diagnostics]
    return schedule


@app.route("/api/v1/replenishment/schedule", methods=["GET"])
def replenishment_schedule():
    try:
        schedule = _schedule_from_query()
    except ForecastParameterError as e:
        return _error(str(e), 400)
    return jsonify(schedule)


@app.route("/api/v1/replenishment/schedule.csv", methods=["GET"])
def replenishment_schedule_csv():
    try:
        schedule = _schedule_from_query()
    except ForecastParameterError as e:
        return _error(str(e), 400)

    rows = [
        {"tier": tier, **entry}
        for tier, entries in schedule["tiers"].items()
        for entry in entries
    ]
    columns = ["tier", "material_id", "material", "recommended_quantity", "reorder_date", "estimated_cost",
               "days_until_stockout", "status"]
    df = pd.DataFrame(rows, columns=columns)
    return Response(
        df.to_csv(index=False),
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=replenishment_schedule.csv"},
    )


@app.route("/api/v1/stock-levels/sync", methods=["POST"])
def stock_levels_sync():
    data = request.get_json(silent=True) or {}
    try:
        as_of = to_date(data["as_of"]) if data.get("as_of") else None
    except ValueError:
        return _error("as_of must be an ISO date", 400)

    db = SessionLocal()
    try:
        figures = sync_stock_levels(db, as_of)
        return jsonify({
            "status": "success",
            "count": len(figures),
            "needs_reorder": sum(1 for f in figures if f.needs_reorder),
        })
    except SQLAlchemyError as e:
        return _error(str(e), 500)
    finally:
        db.close()


@app.cli.command("generate-forecasts")
@click.option("--source", default=COMBINED, show_default=True,
              type=click.Choice(SOURCE_KINDS))
@click.option("--forecast-days", default=config.FORECAST_DAYS, show_default=True, type=int)
@click.option("--historical-days", default=config.HISTORICAL_DAYS, show_default=True, type=int)
def generate_forecasts(source, forecast_days, historical_days):
    """Regenerate and persist the active forecast of every material."""
    try:
        run = run_forecasts(source=source, forecast_days=forecast_days, historical_days=historical_days)
    except ForecastParameterError as e:
        raise click.BadParameter(str(e))
    click.echo(f"{run.persisted}/{len(run.results)} forecasts persisted, {len(run.diagnostics)} diagnostics")


if __name__ == "__main__":
    app.run(host=config.FLASK_HOST, port=config.FLASK_PORT, debug=config.FLASK_ENV == "development")
