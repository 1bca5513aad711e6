"""
Tests para el módulo de productos
"""

from decimal import Decimal


class TestProductAPI:

    def test_create_and_list_products(self, client, auth_headers, product):
        response = client.post("/products/", json={
            "name": "  Charuto  ",
            "cost_price": "12.00",
            "sale_price": "18.00",
            "stock_quantity": 3,
            "min_stock": 4
        }, headers=auth_headers)
        assert response.status_code == 201
        created = response.json()
        assert created["name"] == "Charuto"
        assert created["is_low_stock"] is True
        assert Decimal(created["credit_price"]) == Decimal("0")

        listing = client.get("/products/", headers=auth_headers).json()
        assert listing["total"] == 2
        assert [p["name"] for p in listing["products"]] == ["Charuto", "Cigarro Maço"]

        low = client.get("/products/?low_stock=true", headers=auth_headers).json()
        assert [p["name"] for p in low["products"]] == ["Charuto"]

    def test_update_product(self, client, auth_headers, product):
        response = client.patch(f"/products/{product.id}", json={"credit_price": "12.50", "stock_quantity": 4}, headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["credit_price"]) == Decimal("12.50")
        assert Decimal(body["sale_price"]) == Decimal("10.00")
        assert body["is_low_stock"] is True

    def test_invalid_and_missing(self, client, auth_headers):
        assert client.post("/products/", json={"name": " "}, headers=auth_headers).status_code == 422
        assert client.post("/products/", json={"name": "X", "sale_price": "-1"}, headers=auth_headers).status_code == 422
        assert client.get("/products/999", headers=auth_headers).status_code == 404
        assert client.patch("/products/999", json={"name": "Y"}, headers=auth_headers).status_code == 404


class TestProductModel:

    def test_price_for(self, product):
        assert product.price_for(is_credit=False) == Decimal("10.00")
        assert product.price_for(is_credit=True) == Decimal("11.00")
        product.credit_price = Decimal("0")
        assert product.price_for(is_credit=True) == Decimal("10.00")
