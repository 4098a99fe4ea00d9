import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType

from sqlalchemy.exc import SQLAlchemyError

from config import config
from db.connection import engine as default_engine, SessionLocal
from db.snapshot_store import upsert_snapshot
from models.consumption_model import ConsumptionHistory, load_ledger_events, load_output_events
from models.demand_model import estimate_demand
from models.demand_source import (
    COMBINED, SOURCE_KINDS, Diagnostic, build_demand_source, load_bom_lines, load_order_lines, load_products,
)
from models.material_model import StockSnapshot, load_authoritative_usage, load_materials, load_stock_snapshot
from models.projection_model import ForecastSummary, project_daily_usage, summarize_forecast
from models.reorder_model import URGENCY_TIERS, ReplenishmentRecommendation, recommend_replenishment
from models.stock_status_model import StockBasis, available_quantity, classify, status_label

logger = logging.getLogger(__name__)


class ForecastParameterError(ValueError):
    pass


@dataclass(frozen=True)
class ForecastInputs:
    """Everything one run reads, captured once before any computation."""
    as_of: date
    historical_days: int
    materials: MappingProxyType
    products: tuple
    bom_lines: tuple
    output_events: tuple
    order_lines: tuple
    history: ConsumptionHistory
    stock: StockSnapshot
    authoritative_usage: MappingProxyType


@dataclass(frozen=True)
class MaterialResult:
    summary: ForecastSummary
    recommendation: ReplenishmentRecommendation
    replenishment_status: str
    tracked: bool


@dataclass
class ForecastRun:
    as_of: date
    source: str
    forecast_days: int
    historical_days: int
    results: list = field(default_factory=list)
    diagnostics: list = field(default_factory=list)
    persisted: int = 0

    @property
    def summaries(self) -> list:
        return [r.summary for r in self.results]

    @property
    def recommendations(self) -> list:
        return [r.recommendation for r in self.results]

    def to_dict(self, include_daily=False):
        return {
            "as_of": self.as_of.isoformat(),
            "source": self.source,
            "forecast_days": self.forecast_days,
            "historical_days": self.historical_days,
            "count": len(self.results),
            "persisted": self.persisted,
            "forecasts": [r.summary.to_dict(include_daily=include_daily) for r in self.results],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


def _positive_int(name, value):
    if isinstance(value, bool):
        raise ForecastParameterError(f"{name} must be an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ForecastParameterError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, float) and value != number:
        raise ForecastParameterError(f"{name} must be an integer, got {value!r}")
    if number <= 0:
        raise ForecastParameterError(f"{name} must be positive, got {value!r}")
    return number


def validate_parameters(source, forecast_days, historical_days):
    if source not in SOURCE_KINDS:
        raise ForecastParameterError(f"source must be one of {', '.join(SOURCE_KINDS)}, got {source!r}")
    return (
        source,
        _positive_int("forecast_days", forecast_days),
        _positive_int("historical_days", historical_days),
    )


def load_forecast_inputs(as_of: date, historical_days: int, engine=None) -> ForecastInputs:
    engine = engine or default_engine
    output_events = load_output_events(historical_days, as_of, engine)
    ledger_events = load_ledger_events(historical_days, as_of, engine)
    return ForecastInputs(
        as_of=as_of,
        historical_days=historical_days,
        materials=MappingProxyType(load_materials(engine)),
        products=tuple(load_products(engine)),
        bom_lines=tuple(load_bom_lines(engine)),
        output_events=tuple(output_events),
        order_lines=tuple(load_order_lines(historical_days, as_of, engine)),
        history=ConsumptionHistory(output_events + ledger_events),
        stock=load_stock_snapshot(engine),
        authoritative_usage=MappingProxyType(load_authoritative_usage(engine)),
    )


def forecast_material(material, demand, inputs: ForecastInputs, forecast_days: int, tracked: bool) -> MaterialResult:
    """
    Estimate, project, classify and size the reorder for one material.
    Tracked materials are judged on projected stock, the rest on current stock.
    """
    mid = material.id
    current_stock = inputs.stock.on_hand(mid)

    if tracked:
        basis = StockBasis.PROJECTED
        lines = [line for line in demand.bom_lines() if line.material_id == mid]
        expected = demand.expected_usage(mid)
        daily = project_daily_usage(
            lines,
            {line.product_id: demand.baseline_output(line.product_id) for line in lines},
            {line.product_id: demand.output_trend(line.product_id) for line in lines},
            forecast_days,
            inputs.as_of,
        )
    else:
        basis = StockBasis.CURRENT
        expected = 0.0
        daily = []

    estimate = estimate_demand(
        mid,
        demand.consumption_series(mid),
        expected_usage=expected,
        authoritative_usage=inputs.authoritative_usage.get(mid),
        default_usage=config.DEFAULT_DAILY_USAGE,
    )
    if estimate.anomalous:
        logger.info(f"Material {mid}: history deviates from BOM baseline, using {estimate.daily_usage:.2f}/day")

    summary = summarize_forecast(material, current_stock, estimate, forecast_days, inputs.as_of, basis, daily)
    recommendation = recommend_replenishment(
        material,
        summary.daily_usage,
        estimate.std_dev,
        current_stock,
        summary.projected_stock,
        summary.days_until_stockout,
        inputs.as_of,
    )
    replenishment_status = classify(
        available_quantity(current_stock, summary.projected_stock, basis),
        material.critical_stock,
        recommendation.reorder_point,
        recommendation.max_level,
    )
    return MaterialResult(summary, recommendation, replenishment_status, tracked)


def snapshot_values(summary: ForecastSummary) -> dict:
    return {
        "forecast_date": summary.as_of,
        "forecast_period_start": summary.period_start,
        "forecast_period_end": summary.period_end,
        "forecast_days": summary.forecast_days,
        "current_stock": round(summary.current_stock, 2),
        "daily_usage": round(summary.daily_usage, 2),
        "forecasted_usage": round(summary.forecasted_usage, 2),
        "projected_stock": round(summary.projected_stock, 2),
        "days_until_stockout": summary.days_until_stockout,
        "status": summary.status,
        "status_label": summary.status_label,
        "needs_reorder": summary.needs_reorder,
        "confidence_score": summary.confidence_score,
        "confidence_level": summary.confidence_level,
        "method": summary.method,
        "method_details": summary.method_details(),
    }


def persist_results(results, session_factory=None) -> tuple:
    """
    One transaction per material. A failure is logged and reported as a
    diagnostic; the remaining materials are still written.
    """
    session_factory = session_factory or SessionLocal
    persisted = 0
    diagnostics = []
    for result in results:
        summary = result.summary
        db = session_factory()
        try:
            upsert_snapshot(db, summary.material_id, snapshot_values(summary))
            persisted += 1
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist forecast for material {summary.material_id}: {e}", exc_info=True)
            diagnostics.append(Diagnostic("persist_failed", material_id=summary.material_id, detail=str(e)))
        finally:
            db.close()
    return persisted, diagnostics


def run_forecasts(
        as_of: date | None = None,
        source: str = COMBINED,
        forecast_days: int | None = None,
        historical_days: int | None = None,
        persist: bool = True,
        include_untracked: bool = True,
        workers: int | None = None,
        inputs: ForecastInputs | None = None,
        engine=None,
        session_factory=None,
) -> ForecastRun:
    source, forecast_days, historical_days = validate_parameters(
        source,
        config.FORECAST_DAYS if forecast_days is None else forecast_days,
        config.HISTORICAL_DAYS if historical_days is None else historical_days,
    )
    as_of = as_of or (inputs.as_of if inputs else date.today())
    inputs = inputs or load_forecast_inputs(as_of, historical_days, engine)

    demand = build_demand_source(
        source,
        inputs.products,
        inputs.bom_lines,
        inputs.output_events,
        inputs.order_lines,
        inputs.history,
        historical_days,
        config.STOCKED_PRODUCT_CODE,
        config.STOCKED_PRODUCT_NAME,
    )
    run = ForecastRun(as_of, source, forecast_days, historical_days)
    run.diagnostics.extend(demand.diagnostics())

    tracked_ids = set()
    for mid in demand.material_ids():
        if mid in inputs.materials:
            tracked_ids.add(mid)
        else:
            run.diagnostics.append(
                Diagnostic("material_not_found", material_id=mid, detail="referenced by a BOM line")
            )

    material_ids = sorted(inputs.materials if include_untracked else tracked_ids)
    jobs = [(inputs.materials[mid], mid in tracked_ids) for mid in material_ids]

    def work(job):
        material, tracked = job
        return forecast_material(material, demand, inputs, forecast_days, tracked)

    workers = config.FORECAST_WORKERS if workers is None else workers
    if workers and workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(work, jobs))
    else:
        results = [work(job) for job in jobs]
    run.results = sorted(results, key=lambda r: r.summary.material_id)

    if persist:
        run.persisted, failures = persist_results(run.results, session_factory)
        run.diagnostics.extend(failures)

    for d in run.diagnostics:
        logger.warning(f"Forecast diagnostic: {d.reason} material={d.material_id} product={d.product_id} {d.detail}")
    logger.info(
        f"Forecast run ({source}, {forecast_days}d horizon, {historical_days}d history): "
        f"{len(run.results)} materials, {run.persisted} persisted, {len(run.diagnostics)} diagnostics"
    )
    return run


# ----------------------------------------------------------
# REPLENISHMENT SCHEDULE
# ----------------------------------------------------------
def schedule_entry(result: MaterialResult) -> dict:
    rec = result.recommendation
    entry = rec.to_dict()
    entry["status"] = result.replenishment_status
    entry["status_label"] = status_label(result.replenishment_status)
    return entry


def build_replenishment_schedule(results) -> dict:
    """
    Materials that need an order, grouped by urgency tier, plus totals.
    """
    tiers = {tier: [] for tier in URGENCY_TIERS}
    scheduled = [r for r in results if r.recommendation.suggested_order_qty > 0]
    for result in sorted(scheduled, key=lambda r: (r.recommendation.days_until_stockout, r.recommendation.material_id)):
        tiers[result.recommendation.urgency].append(schedule_entry(result))

    total_value = sum(r.recommendation.estimated_cost for r in scheduled)
    avg_lead_time = (
        sum(r.recommendation.lead_time_days for r in scheduled) / len(scheduled) if scheduled else 0.0
    )
    return {
        "tiers": tiers,
        "summary": {
            "counts": {tier: len(items) for tier, items in tiers.items()},
            "total_items": len(scheduled),
            "materials_needing_reorder": sum(1 for r in results if r.recommendation.needs_reorder),
            "total_reorder_value": round(total_value, 2),
            "average_lead_time": round(avg_lead_time, 1),
        },
    }
