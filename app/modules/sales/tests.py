"""
Tests para el módulo de ventas

Cubren el registro de ventas a la vista y fiado, el descuento de stock
y la apertura de la CreditSale en el ledger.
"""

import pytest
from decimal import Decimal
from fastapi import HTTPException
from pydantic import ValidationError

from app.modules.ledger.models import CreditSale
from app.modules.products.models import Product
from app.modules.sales.models import Sale
from app.modules.sales.schemas import SaleCreate
from app.modules.sales.service import SaleService


# ===== SCHEMAS =====

class TestSaleSchemas:

    def test_credit_sale_requires_customer(self):
        with pytest.raises(ValidationError):
            SaleCreate(is_credit=True, items=[{"product_id": 1, "quantity": 1}])

    def test_sale_requires_items(self):
        with pytest.raises(ValidationError):
            SaleCreate(items=[])

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            SaleCreate(items=[{"product_id": 1, "quantity": 0}])


# ===== SERVICE =====

class TestSaleService:

    def test_cash_sale_decrements_stock(self, db_session, product):
        sale = SaleService(db_session).create_sale(SaleCreate(
            items=[{"product_id": product.id, "quantity": 3}]
        ))

        assert sale.total == Decimal("30.00")
        assert sale.is_credit is False
        assert sale.credit_sale is None
        assert len(sale.items) == 1
        assert sale.items[0].unit_price == Decimal("10.00")

        db_session.refresh(product)
        assert product.stock_quantity == 17

    def test_credit_sale_opens_ledger_entry(self, db_session, customer, product):
        sale = SaleService(db_session).create_sale(SaleCreate(
            customer_id=customer.id,
            is_credit=True,
            items=[{"product_id": product.id, "quantity": 2}]
        ))

        # Fiado usa el precio de crédito del producto
        assert sale.total == Decimal("22.00")
        credit_sale = db_session.query(CreditSale).filter(CreditSale.sale_id == sale.id).one()
        assert credit_sale.customer_id == customer.id
        assert credit_sale.original_amount == Decimal("22.00")
        assert credit_sale.amount_paid == Decimal("0.00")
        assert credit_sale.settled is False
        assert sale.credit_sale_id == credit_sale.id

    def test_credit_price_falls_back_to_sale_price(self, db_session, customer):
        lighter = Product(
            name="Isqueiro",
            cost_price=Decimal("2.00"),
            sale_price=Decimal("5.00"),
            credit_price=Decimal("0.00"),
            stock_quantity=10,
            min_stock=2
        )
        db_session.add(lighter)
        db_session.commit()

        sale = SaleService(db_session).create_sale(SaleCreate(
            customer_id=customer.id,
            is_credit=True,
            items=[{"product_id": lighter.id, "quantity": 1}]
        ))
        assert sale.total == Decimal("5.00")

    def test_explicit_unit_price(self, db_session, product):
        sale = SaleService(db_session).create_sale(SaleCreate(
            items=[{"product_id": product.id, "quantity": 2, "unit_price": "9.50"}]
        ))
        assert sale.total == Decimal("19.00")

    def test_insufficient_stock_changes_nothing(self, db_session, product):
        with pytest.raises(HTTPException) as exc_info:
            SaleService(db_session).create_sale(SaleCreate(
                items=[
                    {"product_id": product.id, "quantity": 15},
                    {"product_id": product.id, "quantity": 10}
                ]
            ))

        assert exc_info.value.status_code == 400
        db_session.refresh(product)
        assert product.stock_quantity == 20
        assert db_session.query(Sale).count() == 0

    def test_unknown_product_or_customer(self, db_session, product):
        service = SaleService(db_session)

        with pytest.raises(HTTPException) as exc_info:
            service.create_sale(SaleCreate(items=[{"product_id": 999, "quantity": 1}]))
        assert exc_info.value.status_code == 404

        with pytest.raises(HTTPException) as exc_info:
            service.create_sale(SaleCreate(
                customer_id=999,
                is_credit=True,
                items=[{"product_id": product.id, "quantity": 1}]
            ))
        assert exc_info.value.status_code == 404

    def test_list_sales_filters(self, db_session, customer, product):
        service = SaleService(db_session)
        service.create_sale(SaleCreate(items=[{"product_id": product.id, "quantity": 1}]))
        service.create_sale(SaleCreate(
            customer_id=customer.id,
            is_credit=True,
            items=[{"product_id": product.id, "quantity": 1}]
        ))

        assert service.get_sales().total == 2
        credit_only = service.get_sales(is_credit=True)
        assert credit_only.total == 1
        assert credit_only.sales[0].customer_id == customer.id


# ===== ENDPOINTS =====

class TestSaleAPI:

    def test_create_and_get_sale(self, client, auth_headers, product):
        response = client.post("/sales/", json={
            "items": [{"product_id": product.id, "quantity": 1}]
        }, headers=auth_headers)
        assert response.status_code == 201
        sale_id = response.json()["id"]

        detail = client.get(f"/sales/{sale_id}", headers=auth_headers)
        assert detail.status_code == 200
        assert Decimal(detail.json()["total"]) == Decimal("10.00")
        assert detail.json()["credit_sale_id"] is None

    def test_credit_sale_without_customer_is_rejected(self, client, auth_headers, product):
        response = client.post("/sales/", json={
            "is_credit": True,
            "items": [{"product_id": product.id, "quantity": 1}]
        }, headers=auth_headers)
        assert response.status_code == 422

    def test_missing_sale(self, client, auth_headers):
        assert client.get("/sales/999", headers=auth_headers).status_code == 404

    def test_requires_authentication(self, client):
        assert client.get("/sales/").status_code == 401
