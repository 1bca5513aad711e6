"""
Fixtures compartidos para los tests de los módulos.

La app se importa contra SQLite en memoria: las variables de entorno se fijan
antes de cargar app.core.config.
"""
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SHOP_PASSWORD"] = "segredo-teste"
os.environ["DEBUG"] = "false"

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.common.cache import dashboard_cache
from app.database.database import Base, SessionLocal, engine, get_db
from app.modules.auth.utils import SHOP_SUBJECT, create_access_token
from app.modules.customers.models import Customer
from app.modules.ledger.models import CreditSale
from app.modules.products.models import Product
from app.modules.sales.models import Sale


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    dashboard_cache.invalidate()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    app.dependency_overrides[get_db] = lambda: db_session
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    token = create_access_token({"sub": SHOP_SUBJECT})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer(db_session):
    customer = Customer(name="Seu Jorge")
    db_session.add(customer)
    db_session.commit()
    db_session.refresh(customer)
    return customer


@pytest.fixture
def product(db_session):
    product = Product(
        name="Cigarro Maço",
        cost_price=Decimal("7.00"),
        sale_price=Decimal("10.00"),
        credit_price=Decimal("11.00"),
        stock_quantity=20,
        min_stock=5
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture
def open_credit_sale(db_session):
    """Crea una venta fiado en abierto con fecha controlada."""
    base = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def _create(customer, amount, minutes=0, amount_paid="0.00"):
        sold_at = base + timedelta(minutes=minutes)
        sale = Sale(customer_id=customer.id, total=Decimal(amount), is_credit=True, sold_at=sold_at)
        sale.credit_sale = CreditSale(
            customer_id=customer.id,
            original_amount=Decimal(amount),
            amount_paid=Decimal(amount_paid),
            settled=False,
            created_at=sold_at
        )
        db_session.add(sale)
        db_session.commit()
        return sale.credit_sale.id

    return _create
