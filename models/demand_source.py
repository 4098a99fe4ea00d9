from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Protocol, Sequence

import pandas as pd
from sqlalchemy import select

from db.connection import engine as default_engine
from db.models import BomLine, OrderLine, Product
from models.consumption_model import ConsumptionHistory, StockedOutputEvent
from models.demand_model import expected_daily_usage, linear_trend
from utils.date_utils import to_date, window_start
from utils.forecast_config import DEFAULT_AVG_DAILY_OUTPUT
from utils.stock_constants import ACCEPTED_ORDER_STATUSES, MADE_TO_ORDER_CATEGORY, STOCKED_CATEGORY

STOCKED = "stocked"
MADE_TO_ORDER = "made_to_order"
COMBINED = "combined"
SOURCE_KINDS = (STOCKED, MADE_TO_ORDER, COMBINED)


@dataclass(frozen=True)
class ProductRef:
    id: int
    code: str
    name: str
    category: str


@dataclass(frozen=True)
class BillOfMaterialsLine:
    product_id: int
    material_id: int
    quantity_per_unit: float


@dataclass(frozen=True)
class OrderLineRecord:
    product_id: int
    quantity: float
    order_date: date


@dataclass(frozen=True)
class Diagnostic:
    reason: str
    material_id: int | None = None
    product_id: int | None = None
    detail: str = ""

    def to_dict(self):
        return {
            "reason": self.reason,
            "material_id": self.material_id,
            "product_id": self.product_id,
            "detail": self.detail,
        }


class DemandSource(Protocol):
    name: str

    def products(self) -> Sequence[ProductRef]: ...

    def bom_lines(self) -> Sequence[BillOfMaterialsLine]: ...

    def baseline_output(self, product_id: int) -> float: ...

    def output_trend(self, product_id: int) -> float: ...

    def consumption_series(self, material_id: int) -> list: ...

    def diagnostics(self) -> list: ...


# ----------------------------------------------------------
# STOCKED PRODUCT RESOLUTION
# ----------------------------------------------------------
def resolve_stocked_product(products: Sequence[ProductRef], code: str | None, name: str | None):
    """
    Locate the stocked product. Precedence: exact code, exact name
    (case-insensitive), then name containing `name` (case-insensitive).
    Ties go to the lowest product id. Returns None when nothing matches.
    """
    ordered = sorted(products, key=lambda p: p.id)

    if code:
        for p in ordered:
            if p.code == code:
                return p

    if name:
        wanted = name.strip().casefold()
        for p in ordered:
            if p.name.strip().casefold() == wanted:
                return p
        for p in ordered:
            if wanted in p.name.casefold():
                return p

    return None


# ----------------------------------------------------------
# SOURCES
# ----------------------------------------------------------
class _BomBackedSource(ABC):
    """Shared BOM bookkeeping for the concrete sources."""

    name = ""

    def __init__(self, products, bom_lines, history: ConsumptionHistory):
        self._products = tuple(sorted(products, key=lambda p: p.id))
        product_ids = {p.id for p in self._products}
        self._bom = tuple(
            sorted(
                (line for line in bom_lines if line.product_id in product_ids),
                key=lambda line: (line.material_id, line.product_id),
            )
        )
        self._history = history
        self._diagnostics = [
            Diagnostic("no_bom", product_id=p.id, detail=f"{p.name} has no bill of materials")
            for p in self._products
            if not any(line.product_id == p.id for line in self._bom)
        ]

    def products(self):
        return self._products

    def bom_lines(self):
        return self._bom

    def consumption_series(self, material_id: int) -> list:
        return self._history.series(material_id)

    def diagnostics(self) -> list:
        return list(self._diagnostics)

    def material_ids(self) -> list:
        return sorted({line.material_id for line in self.bom_lines()})

    def bom_for_material(self, material_id: int) -> dict:
        return {
            line.product_id: line.quantity_per_unit
            for line in self.bom_lines()
            if line.material_id == material_id
        }

    def expected_usage(self, material_id: int) -> float:
        bom = self.bom_for_material(material_id)
        return expected_daily_usage(bom, {pid: self.baseline_output(pid) for pid in bom})

    @abstractmethod
    def baseline_output(self, product_id: int) -> float: ...

    @abstractmethod
    def output_trend(self, product_id: int) -> float: ...


class StockedDemandSource(_BomBackedSource):
    """
    Batch production of one product at a roughly fixed daily output.
    Baseline = total produced / distinct days with output.
    """

    name = STOCKED

    def __init__(self, product: ProductRef | None, output_events, bom_lines, history: ConsumptionHistory,
                 default_output: float = DEFAULT_AVG_DAILY_OUTPUT):
        super().__init__([product] if product else [], bom_lines, history)
        self.product = product

        per_day = defaultdict(float)
        if product is not None:
            for event in output_events:
                if isinstance(event, StockedOutputEvent) and event.product_id == product.id:
                    per_day[event.date] += event.quantity_produced
        self.days_with_output = len(per_day)
        self.total_output = sum(per_day[d] for d in sorted(per_day))
        self._daily_output = [per_day[d] for d in sorted(per_day)]

        avg = self.total_output / self.days_with_output if self.days_with_output else 0.0
        self.avg_daily_output = avg if avg > 0 else float(default_output)
        if product is None:
            self._diagnostics.append(Diagnostic("stocked_product_not_found"))

    def baseline_output(self, product_id: int) -> float:
        if self.product is None or product_id != self.product.id:
            return 0.0
        return self.avg_daily_output

    def output_trend(self, product_id: int) -> float:
        if self.product is None or product_id != self.product.id:
            return 0.0
        return linear_trend(self._daily_output)


class MadeToOrderDemandSource(_BomBackedSource):
    """
    Products built against accepted orders.
    Baseline = ordered quantity over the window / window length in days.
    """

    name = MADE_TO_ORDER

    def __init__(self, products, order_lines, bom_lines, history: ConsumptionHistory, historical_days: int):
        super().__init__(products, bom_lines, history)
        self.historical_days = max(1, int(historical_days))

        product_ids = {p.id for p in self._products}
        by_product_day = defaultdict(lambda: defaultdict(float))
        for line in order_lines:
            if line.product_id in product_ids:
                by_product_day[line.product_id][line.order_date] += line.quantity
        self._ordered = {
            pid: [days[d] for d in sorted(days)]
            for pid, days in by_product_day.items()
        }

    def total_ordered(self, product_id: int) -> float:
        return float(sum(self._ordered.get(product_id, [])))

    def baseline_output(self, product_id: int) -> float:
        return self.total_ordered(product_id) / self.historical_days

    def output_trend(self, product_id: int) -> float:
        return linear_trend(self._ordered.get(product_id, []))


class CombinedDemandSource(_BomBackedSource):
    """Union of other sources; each product keeps its owning source's baseline."""

    name = COMBINED

    def __init__(self, sources, history: ConsumptionHistory):
        owners = {}
        for source in sources:
            for product in source.products():
                owners.setdefault(product.id, source)
        self._owners = owners
        self._sources = tuple(sources)
        products = [p for s in self._sources for p in s.products() if owners[p.id] is s]
        bom_lines = [line for s in self._sources for line in s.bom_lines() if owners[line.product_id] is s]
        super().__init__(products, bom_lines, history)
        # Product-level problems were already reported by the member sources
        self._diagnostics = [d for s in self._sources for d in s.diagnostics()]

    def baseline_output(self, product_id: int) -> float:
        owner = self._owners.get(product_id)
        return owner.baseline_output(product_id) if owner else 0.0

    def output_trend(self, product_id: int) -> float:
        owner = self._owners.get(product_id)
        return owner.output_trend(product_id) if owner else 0.0


def build_demand_source(kind: str, products, bom_lines, output_events, order_lines, history: ConsumptionHistory,
                        historical_days: int, stocked_code: str | None, stocked_name: str | None):
    if kind not in SOURCE_KINDS:
        raise ValueError(f"unknown demand source '{kind}', expected one of {', '.join(SOURCE_KINDS)}")

    stocked_candidates = [p for p in products if p.category == STOCKED_CATEGORY] or list(products)
    stocked = StockedDemandSource(
        resolve_stocked_product(stocked_candidates, stocked_code, stocked_name),
        output_events, bom_lines, history,
    )
    if kind == STOCKED:
        return stocked

    made_to_order = MadeToOrderDemandSource(
        [p for p in products if p.category == MADE_TO_ORDER_CATEGORY],
        order_lines, bom_lines, history, historical_days,
    )
    if kind == MADE_TO_ORDER:
        return made_to_order

    return CombinedDemandSource([stocked, made_to_order], history)


# ----------------------------------------------------------
# LOADERS
# ----------------------------------------------------------
def load_products(engine=None) -> list:
    df = pd.read_sql(
        select(Product.id, Product.code, Product.name, Product.category).order_by(Product.id),
        engine or default_engine,
    )
    return [
        ProductRef(int(r["id"]), str(r["code"]), str(r["name"]), str(r["category"]))
        for r in df.to_dict("records")
    ]


def load_bom_lines(engine=None) -> list:
    df = pd.read_sql(
        select(BomLine.product_id, BomLine.material_id, BomLine.quantity_per_unit)
        .order_by(BomLine.product_id, BomLine.material_id),
        engine or default_engine,
    )
    return [
        BillOfMaterialsLine(int(r["product_id"]), int(r["material_id"]), float(r["quantity_per_unit"] or 0))
        for r in df.to_dict("records")
    ]


def load_order_lines(historical_days: int, as_of: date, engine=None) -> list:
    q = (
        select(OrderLine.product_id, OrderLine.quantity, OrderLine.order_date)
        .where(OrderLine.status.in_(ACCEPTED_ORDER_STATUSES))
        .where(OrderLine.order_date >= window_start(as_of, historical_days))
        .where(OrderLine.order_date <= as_of)
        .order_by(OrderLine.order_date, OrderLine.id)
    )
    df = pd.read_sql(q, engine or default_engine)
    return [
        OrderLineRecord(int(r["product_id"]), max(0.0, float(r["quantity"] or 0)), to_date(r["order_date"]))
        for r in df.to_dict("records")
    ]
