import os
import sys
import tempfile
from datetime import date, datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

_DB_DIR = tempfile.mkdtemp(prefix="material-forecast-tests-")

AS_OF = date(2024, 5, 31)


def pytest_configure(config):
    """
    Runs before test modules are imported, so db.connection builds its
    engine against a throwaway SQLite file instead of PostgreSQL.
    """
    os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/forecast.db"
    os.environ["FORECAST_WORKERS"] = "1"
    os.environ["LOG_LEVEL"] = "WARNING"


@pytest.fixture
def db_engine():
    from db.connection import engine
    from db.models import Base

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session(db_engine):
    from db.connection import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(db_engine):
    from app import app

    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


@pytest.fixture
def seeded(session):
    """
    Small plant as of 2024-05-31:
      - Alkansya (stocked) makes 20/day for 10 days, using 2 plywood each (40/day logged)
      - Table (made to order) has 30 accepted units over the window, 0.5 varnish each
      - Glue is in no BOM and is consumed 3/day on the last three days
      - A BOM line points at material 999, which does not exist
    """
    from db.models import (
        BomLine, InventoryRecord, InventoryTransaction, Material, OrderLine, Product, StockedOutputLog,
    )

    plywood = Material(id=1, code="PLY", name="Plywood", unit_cost=2.5)
    varnish = Material(id=2, code="VRN", name="Varnish", unit_cost=8)
    glue = Material(id=3, code="GLU", name="Glue", unit_cost=1, reorder_level=20)
    alkansya = Product(id=1, code="ALK", name="Alkansya", category="stocked")
    table = Product(id=2, code="TBL", name="Dining Table", category="made_to_order")
    session.add_all([plywood, varnish, glue, alkansya, table])
    session.flush()

    session.add_all([
        BomLine(product_id=1, material_id=1, quantity_per_unit=2),
        BomLine(product_id=1, material_id=999, quantity_per_unit=1),
        BomLine(product_id=2, material_id=2, quantity_per_unit=0.5),
        InventoryRecord(material_id=1, location="main", current_stock=150, quantity_reserved=0),
        InventoryRecord(material_id=1, location="annex", current_stock=50, quantity_reserved=0),
        InventoryRecord(material_id=2, location="main", current_stock=100, quantity_reserved=0),
        InventoryRecord(material_id=3, location="main", current_stock=10, quantity_reserved=2),
    ])
    for day in range(22, 32):
        session.add(StockedOutputLog(
            product_id=1,
            date=date(2024, 5, day),
            quantity_produced=20,
            materials_used=[{"material_id": 1, "quantity": 40}],
        ))
    session.add_all([
        OrderLine(order_id=1, product_id=2, quantity=15, order_date=date(2024, 5, 5), status="accepted"),
        OrderLine(order_id=2, product_id=2, quantity=15, order_date=date(2024, 5, 20), status="completed"),
        OrderLine(order_id=3, product_id=2, quantity=100, order_date=date(2024, 5, 21), status="cancelled"),
    ])
    for day in (29, 30, 31):
        session.add(InventoryTransaction(
            material_id=3, timestamp=datetime(2024, 5, day, 10, 0),
            quantity=-3, transaction_type="CONSUMPTION",
        ))
    # Receipts never count as consumption
    session.add(InventoryTransaction(
        material_id=3, timestamp=datetime(2024, 5, 30, 9, 0), quantity=50, transaction_type="PURCHASE",
    ))
    session.commit()
    return {"plywood": 1, "varnish": 2, "glue": 3, "missing": 999}
