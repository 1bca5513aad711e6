"""
Tests para el dashboard

Las fechas se fijan en UTC; la tienda opera en America/Sao_Paulo (UTC-3),
así que una venta a las 02:00 UTC pertenece al día local anterior.
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from app.common.cache import ReadThroughCache
from app.modules.dashboard.service import DashboardService, growth_percentage, month_start
from app.modules.ledger.models import CreditSale
from app.modules.ledger.service import SettlementService
from app.modules.products.models import Product
from app.modules.sales.models import Sale


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


NOW = utc(2024, 3, 15, 15, 0)  # 12:00 hora local, viernes


@pytest.fixture
def recorded_sales(db_session, customer, product):
    def add_sale(amount, sold_at, is_credit=False):
        sale = Sale(
            customer_id=customer.id if is_credit else None,
            total=Decimal(amount),
            is_credit=is_credit,
            sold_at=sold_at
        )
        if is_credit:
            sale.credit_sale = CreditSale(
                customer_id=customer.id,
                original_amount=Decimal(amount),
                amount_paid=Decimal("0.00"),
                settled=False,
                created_at=sold_at
            )
        db_session.add(sale)

    add_sale("10.00", utc(2024, 3, 15, 13, 0))
    add_sale("30.00", utc(2024, 3, 15, 14, 0), is_credit=True)
    add_sale("20.00", utc(2024, 3, 11, 12, 0))
    add_sale("5.00", utc(2024, 3, 15, 2, 0))   # 14/03 23:00 local
    add_sale("7.00", utc(2024, 3, 1, 2, 0))    # 29/02 23:00 local
    add_sale("50.00", utc(2024, 2, 10, 15, 0))
    db_session.add(Product(
        name="Palha",
        cost_price=Decimal("1.00"),
        sale_price=Decimal("3.00"),
        stock_quantity=2,
        min_stock=5
    ))
    db_session.commit()

    SettlementService(db_session, clock=lambda: utc(2024, 3, 15, 14, 30)).settle_payment(
        customer.id, Decimal("10.00")
    )


# ===== HELPERS =====

class TestHelpers:

    def test_month_start(self):
        assert month_start(date(2024, 1, 15), 1) == date(2023, 12, 1)
        assert month_start(date(2024, 3, 31)) == date(2024, 3, 1)
        assert month_start(date(2024, 12, 5), -1) == date(2025, 1, 1)

    def test_growth_percentage(self):
        assert growth_percentage(Decimal("0"), Decimal("0")) == 0.0
        assert growth_percentage(Decimal("10"), Decimal("0")) == 100.0
        assert growth_percentage(Decimal("50"), Decimal("100")) == -50.0


# ===== SERVICE =====

class TestDashboardService:

    def test_metrics(self, db_session, recorded_sales):
        metrics = DashboardService(db_session, now=NOW).get_metrics()

        assert metrics.sales_today == Decimal("40.00")
        assert metrics.cash_sales_today == Decimal("10.00")
        assert metrics.credit_sales_today == Decimal("30.00")
        assert metrics.sales_week == Decimal("65.00")
        assert metrics.sales_month == Decimal("65.00")
        assert metrics.sales_last_month == Decimal("57.00")
        assert metrics.month_growth == 14.0
        assert metrics.credit_paid_today == Decimal("10.00")
        assert metrics.credit_outstanding == Decimal("20.00")
        assert metrics.low_stock_count == 1
        assert metrics.product_count == 2
        assert metrics.customer_count == 1

    def test_chart_fills_empty_months(self, db_session, recorded_sales):
        chart = DashboardService(db_session, now=NOW).get_chart(3)

        assert chart.months == 3
        assert [p.month for p in chart.chart_data] == ["2024-01", "2024-02", "2024-03"]
        january, february, march = chart.chart_data
        assert (january.cash_sales, january.credit_sales, january.credit_paid) == (0, 0, 0)
        assert february.cash_sales == Decimal("57.00")
        assert march.cash_sales == Decimal("35.00")
        assert march.credit_sales == Decimal("30.00")
        assert march.credit_paid == Decimal("10.00")
        assert march.month_start == date(2024, 3, 1)

    def test_empty_database(self, db_session):
        metrics = DashboardService(db_session, now=NOW).get_metrics()
        assert metrics.sales_today == 0
        assert metrics.credit_outstanding == 0
        assert metrics.month_growth == 0.0


# ===== CACHE =====

class TestReadThroughCache:

    def test_loads_once_until_invalidated(self):
        cache = ReadThroughCache(ttl_seconds=60)
        calls = []

        def loader():
            calls.append(1)
            return len(calls)

        assert cache.get("metrics", loader) == 1
        assert cache.get("metrics", loader) == 1
        cache.invalidate()
        assert cache.peek("metrics") is None
        assert cache.get("metrics", loader) == 2

    def test_zero_ttl_never_stores(self):
        cache = ReadThroughCache(ttl_seconds=0)
        assert cache.get("metrics", lambda: "a") == "a"
        assert cache.peek("metrics") is None

    def test_invalidate_during_load_discards_value(self):
        cache = ReadThroughCache(ttl_seconds=60)

        def loader():
            cache.invalidate()
            return "stale"

        assert cache.get("metrics", loader) == "stale"
        assert cache.peek("metrics") is None


# ===== ENDPOINTS =====

class TestDashboardAPI:

    def test_sale_invalidates_cached_metrics(self, client, auth_headers, product):
        first = client.get("/dashboard/", headers=auth_headers).json()
        assert Decimal(first["sales_today"]) == Decimal("0")

        client.post("/sales/", json={"items": [{"product_id": product.id, "quantity": 1}]}, headers=auth_headers)
        refreshed = client.get("/dashboard/", headers=auth_headers).json()
        assert Decimal(refreshed["sales_today"]) == Decimal("10.00")

    def test_payment_invalidates_outstanding(self, client, auth_headers, customer, open_credit_sale):
        open_credit_sale(customer, "30.00")
        before = client.get("/dashboard/", headers=auth_headers).json()
        assert Decimal(before["credit_outstanding"]) == Decimal("30.00")

        client.post(f"/credit/customers/{customer.id}/payments", json={"amount": "10.00"}, headers=auth_headers)
        after = client.get("/dashboard/", headers=auth_headers).json()
        assert Decimal(after["credit_outstanding"]) == Decimal("20.00")

    def test_chart_months_bounds(self, client, auth_headers):
        assert client.get("/dashboard/chart?months=0", headers=auth_headers).status_code == 422
        response = client.get("/dashboard/chart?months=2", headers=auth_headers)
        assert response.status_code == 200
        assert len(response.json()["chart_data"]) == 2

    def test_catalog_writes_invalidate_counts(self, client, auth_headers, product):
        first = client.get("/dashboard/", headers=auth_headers).json()
        assert (first["product_count"], first["customer_count"], first["low_stock_count"]) == (1, 0, 0)

        client.post("/products/", json={"name": "Seda", "sale_price": "2.00"}, headers=auth_headers)
        client.post("/customers/", json={"name": "Dona Maria"}, headers=auth_headers)
        refreshed = client.get("/dashboard/", headers=auth_headers).json()
        assert (refreshed["product_count"], refreshed["customer_count"]) == (2, 1)

        client.patch(f"/products/{product.id}", json={"stock_quantity": 1}, headers=auth_headers)
        # Seda (stock 0, mínimo 0) y el producto con stock 1
        assert client.get("/dashboard/", headers=auth_headers).json()["low_stock_count"] == 2
