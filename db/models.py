import uuid

from sqlalchemy import (
    Column, String, Numeric, Date, TIMESTAMP, BigInteger, Integer, Boolean, JSON,
    ForeignKey, Index, UniqueConstraint, text
)
from sqlalchemy.orm import declarative_base

from utils.date_utils import utcnow

Base = declarative_base()

# BIGINT keys do not autoincrement on SQLite
ID = BigInteger().with_variant(Integer, "sqlite")


# ---------------------------------------------------------------------------
# Reference data owned by the catalog / production collaborators (read-only)
# ---------------------------------------------------------------------------

class Material(Base):
    __tablename__ = "materials"
    id = Column(ID, primary_key=True, autoincrement=True)
    code = Column(String(50), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    category = Column(String(50), nullable=False, default="raw")
    unit_of_measure = Column(String(20), nullable=False, default="pcs")
    unit_cost = Column(Numeric(12, 2), nullable=False, default=0)

    critical_stock = Column(Numeric(12, 2), nullable=False, default=0)
    reorder_level = Column(Numeric(12, 2), nullable=False, default=0)
    max_level = Column(Numeric(12, 2), nullable=False, default=0)

    lead_time_days = Column(Integer, nullable=False, default=7)
    lead_time_variability = Column(Integer, nullable=False, default=2)


class Product(Base):
    __tablename__ = "products"
    id = Column(ID, primary_key=True, autoincrement=True)
    code = Column(String(50), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    # "stocked" or "made_to_order"
    category = Column(String(50), nullable=False)


class BomLine(Base):
    __tablename__ = "bom_lines"
    id = Column(ID, primary_key=True, autoincrement=True)
    product_id = Column(ID, ForeignKey("products.id"), nullable=False)
    # Not a foreign key: dangling references are reported, not rejected
    material_id = Column(ID, nullable=False)
    quantity_per_unit = Column(Numeric(12, 3), nullable=False)
    __table_args__ = (
        UniqueConstraint("product_id", "material_id", name="uq_bom_product_material"),
    )


class InventoryRecord(Base):
    __tablename__ = "inventory"
    id = Column(ID, primary_key=True, autoincrement=True)
    material_id = Column(ID, ForeignKey("materials.id"), nullable=False, index=True)
    location = Column(String(100), nullable=False, default="main")
    current_stock = Column(Numeric(12, 2), nullable=False, default=0)
    quantity_reserved = Column(Numeric(12, 2), nullable=False, default=0)


class StockedOutputLog(Base):
    __tablename__ = "stocked_output_logs"
    id = Column(ID, primary_key=True, autoincrement=True)
    product_id = Column(ID, ForeignKey("products.id"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    quantity_produced = Column(Numeric(12, 2), nullable=False, default=0)
    # [{"material_id": 1, "quantity": 12.5}, ...] when the line recorded it
    materials_used = Column(JSON, nullable=True)


class InventoryTransaction(Base):
    __tablename__ = "inventory_transactions"
    id = Column(ID, primary_key=True, autoincrement=True)
    material_id = Column(ID, nullable=False, index=True)
    timestamp = Column(TIMESTAMP, nullable=False, index=True)
    quantity = Column(Numeric(12, 2), nullable=False)
    transaction_type = Column(String(50), nullable=False)


class OrderLine(Base):
    __tablename__ = "order_lines"
    id = Column(ID, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, nullable=False, index=True)
    product_id = Column(ID, ForeignKey("products.id"), nullable=False)
    quantity = Column(Numeric(12, 2), nullable=False)
    order_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False)


# ---------------------------------------------------------------------------
# Tables written by the engine
# ---------------------------------------------------------------------------

class StockLevel(Base):
    __tablename__ = "stock_levels"
    id = Column(ID, primary_key=True, autoincrement=True)
    material_id = Column(ID, nullable=False, unique=True)

    available_quantity = Column(Numeric(12, 2), nullable=False, default=0)
    quantity_on_hand = Column(Numeric(12, 2), nullable=False, default=0)
    quantity_reserved = Column(Numeric(12, 2), nullable=False, default=0)
    total_value = Column(Numeric(14, 2), nullable=False, default=0)

    daily_usage = Column(Numeric(12, 2), nullable=False, default=0)
    days_until_stockout = Column(Integer, nullable=False, default=999)
    stock_status = Column(String(20), nullable=False, default="in_stock")
    needs_reorder = Column(Boolean, nullable=False, default=False)

    last_calculated_at = Column(TIMESTAMP, default=utcnow)


class MaterialForecast(Base):
    __tablename__ = "material_forecasts"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    material_id = Column(ID, nullable=False, index=True)

    forecast_date = Column(Date, nullable=False)
    forecast_period_start = Column(Date, nullable=False)
    forecast_period_end = Column(Date, nullable=False)
    forecast_days = Column(Integer, nullable=False, default=30)

    current_stock = Column(Numeric(12, 2), nullable=False)
    daily_usage = Column(Numeric(12, 2), nullable=False)
    forecasted_usage = Column(Numeric(12, 2), nullable=False)
    projected_stock = Column(Numeric(12, 2), nullable=False)
    days_until_stockout = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False)
    status_label = Column(String(30), nullable=False)
    needs_reorder = Column(Boolean, nullable=False, default=False)

    confidence_score = Column(Integer, nullable=False)
    confidence_level = Column(String(10), nullable=False)
    method = Column(String(50), nullable=False)
    method_details = Column(JSON, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP, default=utcnow)

    __table_args__ = (
        Index(
            "uq_material_forecasts_active_material",
            "material_id",
            unique=True,
            postgresql_where=text("is_active = true"),
            sqlite_where=text("is_active = 1"),
        ),
    )
