"""
Tests para el módulo de clientes

El saldo fiado de un cliente se deriva siempre del ledger.
"""

from decimal import Decimal

from app.modules.customers.schemas import CustomerCreate
from app.modules.customers.service import CustomerService
from app.modules.ledger.service import SettlementService


class TestCustomerService:

    def test_total_owed_follows_ledger(self, db_session, customer, open_credit_sale):
        open_credit_sale(customer, "30.00", minutes=0)
        open_credit_sale(customer, "12.00", minutes=1)
        service = CustomerService(db_session)

        assert service.get_customer(customer.id).total_owed == Decimal("42.00")

        SettlementService(db_session).settle_payment(customer.id, Decimal("32.00"))
        assert service.get_customer(customer.id).total_owed == Decimal("10.00")

    def test_new_customer_owes_nothing(self, db_session):
        created = CustomerService(db_session).create_customer(CustomerCreate(name=" Zé "))
        assert created.name == "Zé"
        assert created.total_owed == Decimal("0.00")


class TestCustomerAPI:

    def test_create_list_update(self, client, auth_headers, customer, open_credit_sale):
        open_credit_sale(customer, "15.00")

        response = client.post("/customers/", json={"name": "Dona Maria"}, headers=auth_headers)
        assert response.status_code == 201
        maria_id = response.json()["id"]

        listing = client.get("/customers/", headers=auth_headers).json()
        assert listing["total"] == 2
        owed = {c["name"]: Decimal(c["total_owed"]) for c in listing["customers"]}
        assert owed == {"Dona Maria": Decimal("0"), "Seu Jorge": Decimal("15.00")}

        renamed = client.patch(f"/customers/{maria_id}", json={"name": "Maria da Silva"}, headers=auth_headers)
        assert renamed.status_code == 200
        assert renamed.json()["name"] == "Maria da Silva"

    def test_validation_and_not_found(self, client, auth_headers):
        assert client.post("/customers/", json={"name": "   "}, headers=auth_headers).status_code == 422
        assert client.get("/customers/999", headers=auth_headers).status_code == 404
        assert client.patch("/customers/999", json={"name": "X"}, headers=auth_headers).status_code == 404
