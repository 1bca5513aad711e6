"""
Tests para el ledger de fiado

Cubren:
- Allocator: orden oldest-first, conservación del dinero, determinismo
- SettlementService: escenarios de pago parcial/total, idempotencia,
  atomicidad ante fallos de almacenamiento
- LedgerStore: detección de escrituras concurrentes
- Endpoints /credit
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from sqlalchemy.exc import OperationalError

from app.modules.ledger.allocator import (
    AllocationState, LedgerEntry, allocate_payment, to_money, total_owed
)
from app.modules.ledger.exceptions import (
    ConcurrencyConflict, CustomerNotFound, InvalidPaymentAmount, NoOpenSales,
    PersistenceFailure, SaleAlreadySettled, SaleNotFound
)
from app.modules.ledger.models import CreditSale, CreditPayment
from app.modules.ledger.service import SettlementService
from app.modules.ledger.store import LedgerStore, SaleUpdate
from app.modules.customers.models import Customer


BASE = datetime(2024, 1, 10, 9, 0)


def entry(sale_id, amount, minutes=0, paid="0.00", settled=False):
    return LedgerEntry(
        id=sale_id,
        customer_id=1,
        original_amount=Decimal(amount),
        amount_paid=Decimal(paid),
        created_at=BASE + timedelta(minutes=minutes),
        settled=settled,
    )


# ===== ALLOCATOR =====

class TestAllocator:
    """Tests del cálculo puro de distribución"""

    def test_partial_payment_across_two_sales(self):
        """$30 (más antigua) y $50; pago de $40"""
        result = allocate_payment([entry(1, "30.00", 0), entry(2, "50.00", 10)], Decimal("40"))

        assert [a.sale_id for a in result.allocations] == [1, 2]
        first, second = result.allocations
        assert first.amount_applied == Decimal("30.00")
        assert first.state is AllocationState.FULLY_SETTLED
        assert second.amount_applied == Decimal("10.00")
        assert second.state is AllocationState.PARTIALLY_PAID
        assert second.new_balance == Decimal("40.00")
        assert result.total_applied == Decimal("40.00")
        assert result.remainder == Decimal("0")

    def test_exact_payment_settles_single_sale(self):
        result = allocate_payment([entry(1, "100.00")], "100")

        assert len(result.allocations) == 1
        assert result.allocations[0].settles
        assert result.remainder == 0

    def test_payment_equal_to_first_owed_stops_there(self):
        result = allocate_payment([entry(1, "30.00", 0), entry(2, "50.00", 10)], "30.00")

        assert [a.sale_id for a in result.allocations] == [1]
        assert result.settled[0].sale_id == 1
        assert result.partially_paid == []

    def test_payment_above_total_owed_is_rejected(self):
        with pytest.raises(InvalidPaymentAmount):
            allocate_payment([entry(1, "100.00")], Decimal("150"))

    def test_empty_open_sales(self):
        with pytest.raises(NoOpenSales):
            allocate_payment([], Decimal("10"))

    @pytest.mark.parametrize("amount", ["0", "-5", "10.005", "abc", "NaN", "1e30", "Infinity"])
    def test_invalid_amounts(self, amount):
        with pytest.raises(InvalidPaymentAmount):
            allocate_payment([entry(1, "100.00")], amount)

    def test_orders_by_created_at_then_id(self):
        """La entrada llega desordenada; empates de fecha se resuelven por id"""
        sales = [entry(7, "10.00", 5), entry(3, "10.00", 5), entry(9, "10.00", 0)]
        result = allocate_payment(sales, "25.00")

        assert [a.sale_id for a in result.allocations] == [9, 3, 7]
        assert result.allocations[2].amount_applied == Decimal("5.00")

    def test_settled_entries_are_ignored(self):
        sales = [entry(1, "20.00", 0, paid="20.00", settled=True), entry(2, "20.00", 5)]
        result = allocate_payment(sales, "5.00")

        assert [a.sale_id for a in result.allocations] == [2]

    def test_previous_partial_payment_is_respected(self):
        result = allocate_payment([entry(1, "50.00", paid="20.00"), entry(2, "10.00", 1)], "35.00")

        first, second = result.allocations
        assert first.amount_applied == Decimal("30.00")
        assert first.new_amount_paid == Decimal("50.00")
        assert second.amount_applied == Decimal("5.00")

    @pytest.mark.parametrize("amount", ["0.01", "29.99", "30.00", "30.01", "79.99", "80.00"])
    def test_conservation_and_bounds(self, amount):
        sales = [entry(1, "30.00", 0), entry(2, "50.00", 10)]
        result = allocate_payment(sales, amount)

        assert result.total_applied == Decimal(amount)
        for allocation in result.allocations:
            assert Decimal("0") < allocation.amount_applied
            assert allocation.new_amount_paid <= allocation.original_amount
            assert allocation.settles == (allocation.new_amount_paid == allocation.original_amount)

    def test_deterministic(self):
        sales = [entry(1, "12.50", 0), entry(2, "7.25", 0), entry(3, "40.00", 3)]
        assert allocate_payment(sales, "30.00") == allocate_payment(list(reversed(sales)), "30.00")

    def test_helpers(self):
        assert to_money(10) == Decimal("10.00")
        assert to_money("3.5") == Decimal("3.50")
        assert total_owed([entry(1, "30.00", paid="10.00"), entry(2, "5.00")]) == Decimal("25.00")


# ===== SETTLEMENT SERVICE =====

def ledger_state(db_session, sale_id):
    row = db_session.get(CreditSale, sale_id)
    return row.amount_paid, row.settled, row.settled_at


class TestSettlementService:
    """Tests de liquidación contra la base de datos"""

    def test_scenario_partial_payment(self, db_session, customer, open_credit_sale):
        oldest = open_credit_sale(customer, "30.00", minutes=0)
        newest = open_credit_sale(customer, "50.00", minutes=60)

        report = SettlementService(db_session).settle_payment(customer.id, Decimal("40.00"))

        assert report.applied_amount == Decimal("40.00")
        assert [a.sale_id for a in report.allocation.settled] == [oldest]
        assert report.allocation.partially_paid[0].new_balance == Decimal("40.00")
        assert report.remaining_owed == Decimal("40.00")

        paid, settled, settled_at = ledger_state(db_session, oldest)
        assert (paid, settled) == (Decimal("30.00"), True)
        assert settled_at is not None
        paid, settled, settled_at = ledger_state(db_session, newest)
        assert (paid, settled, settled_at) == (Decimal("10.00"), False, None)

        payments = db_session.query(CreditPayment).order_by(CreditPayment.id).all()
        assert [(p.credit_sale_id, p.amount) for p in payments] == [
            (oldest, Decimal("30.00")), (newest, Decimal("10.00"))
        ]

    def test_scenario_exact_payment(self, db_session, customer, open_credit_sale):
        sale_id = open_credit_sale(customer, "100.00")

        report = SettlementService(db_session).settle_payment(customer.id, "100")

        assert report.allocation.remainder == 0
        assert ledger_state(db_session, sale_id)[:2] == (Decimal("100.00"), True)

    def test_scenario_overpayment_changes_nothing(self, db_session, customer, open_credit_sale):
        sale_id = open_credit_sale(customer, "100.00")

        with pytest.raises(InvalidPaymentAmount):
            SettlementService(db_session).settle_payment(customer.id, Decimal("150"))

        assert ledger_state(db_session, sale_id) == (Decimal("0.00"), False, None)
        assert db_session.query(CreditPayment).count() == 0

    def test_scenario_no_open_sales(self, db_session, customer):
        with pytest.raises(NoOpenSales):
            SettlementService(db_session).settle_payment(customer.id, Decimal("10"))

    def test_unknown_customer_has_no_open_sales(self, db_session):
        with pytest.raises(NoOpenSales):
            SettlementService(db_session).settle_payment(999, Decimal("10"))

    def test_scenario_settle_all(self, db_session, customer, open_credit_sale):
        first = open_credit_sale(customer, "20.00", minutes=0)
        second = open_credit_sale(customer, "35.00", minutes=5)

        report = SettlementService(db_session).settle_all_open_sales(customer.id)

        assert report.settled_count == 2
        assert report.total_amount == Decimal("55.00")
        assert sorted(report.sale_ids) == sorted([first, second])
        assert SettlementService(db_session).get_open_balance(customer.id).total_owed == 0

        with pytest.raises(NoOpenSales):
            SettlementService(db_session).settle_all_open_sales(customer.id)

    def test_settle_all_after_partial_payment(self, db_session, customer, open_credit_sale):
        sale_id = open_credit_sale(customer, "35.00", amount_paid="15.00")

        report = SettlementService(db_session).settle_all_open_sales(customer.id)

        assert report.total_amount == Decimal("20.00")
        assert ledger_state(db_session, sale_id)[:2] == (Decimal("35.00"), True)

    def test_single_sale_partial_then_full(self, db_session, customer, open_credit_sale):
        older = open_credit_sale(customer, "10.00", minutes=0)
        target = open_credit_sale(customer, "50.00", minutes=5)
        service = SettlementService(db_session)

        report = service.settle_single_sale(target, Decimal("20.00"))
        assert (report.settled, report.new_balance) == (False, Decimal("30.00"))

        report = service.settle_sale_in_full(target)
        assert (report.settled, report.new_balance, report.amount_applied) == (True, Decimal("0.00"), Decimal("30.00"))

        # La venta más antigua no se toca en pagos por venta
        assert ledger_state(db_session, older) == (Decimal("0.00"), False, None)

    def test_single_sale_errors(self, db_session, customer, open_credit_sale):
        sale_id = open_credit_sale(customer, "50.00")
        service = SettlementService(db_session)

        with pytest.raises(SaleNotFound):
            service.settle_single_sale(12345, Decimal("1"))
        with pytest.raises(InvalidPaymentAmount):
            service.settle_single_sale(sale_id, Decimal("50.01"))
        with pytest.raises(InvalidPaymentAmount):
            service.settle_single_sale(sale_id, Decimal("0"))

        assert ledger_state(db_session, sale_id) == (Decimal("0.00"), False, None)

    def test_out_of_range_amount_is_rejected(self, db_session, customer, open_credit_sale):
        sale_id = open_credit_sale(customer, "100.00")
        service = SettlementService(db_session)

        with pytest.raises(InvalidPaymentAmount):
            service.settle_payment(customer.id, Decimal("1e30"))
        with pytest.raises(InvalidPaymentAmount):
            service.settle_single_sale(sale_id, Decimal("1e30"))

        assert ledger_state(db_session, sale_id) == (Decimal("0.00"), False, None)
        assert db_session.query(CreditPayment).count() == 0

    def test_sale_whose_customer_cannot_be_locked(self, db_session, customer, open_credit_sale):
        sale_id = open_credit_sale(customer, "50.00")
        service = SettlementService(db_session)
        service.store.lock_customer = lambda customer_id: False

        with pytest.raises(SaleNotFound):
            service.settle_sale_in_full(sale_id)
        assert ledger_state(db_session, sale_id) == (Decimal("0.00"), False, None)

    def test_reads_for_unknown_customer(self, db_session):
        service = SettlementService(db_session)

        with pytest.raises(CustomerNotFound):
            service.get_open_balance(999)
        with pytest.raises(CustomerNotFound):
            service.get_credit_history(999)

    def test_already_settled_sale_is_never_mutated(self, db_session, customer, open_credit_sale):
        sale_id = open_credit_sale(customer, "25.00")
        service = SettlementService(db_session)
        service.settle_single_sale(sale_id, Decimal("25.00"))
        before = ledger_state(db_session, sale_id)
        payments_before = db_session.query(CreditPayment).count()

        for _ in range(2):
            with pytest.raises(SaleAlreadySettled):
                service.settle_single_sale(sale_id, Decimal("1.00"))
        with pytest.raises(SaleAlreadySettled):
            service.settle_sale_in_full(sale_id)

        assert ledger_state(db_session, sale_id) == before
        assert db_session.query(CreditPayment).count() == payments_before

    def test_storage_failure_rolls_back_everything(self, db_session, customer, open_credit_sale):
        first = open_credit_sale(customer, "30.00", minutes=0)
        second = open_credit_sale(customer, "50.00", minutes=5)
        service = SettlementService(db_session)
        original_apply = service.store.apply_updates

        def failing_apply(updates, **kwargs):
            original_apply(updates, **kwargs)
            raise OperationalError("UPDATE credit_sales", {}, Exception("disk I/O error"))

        service.store.apply_updates = failing_apply

        with pytest.raises(PersistenceFailure):
            service.settle_payment(customer.id, Decimal("60.00"))

        assert ledger_state(db_session, first) == (Decimal("0.00"), False, None)
        assert ledger_state(db_session, second) == (Decimal("0.00"), False, None)
        assert db_session.query(CreditPayment).count() == 0

    def test_lock_conflict_is_reported_as_retryable(self, db_session, customer, open_credit_sale):
        open_credit_sale(customer, "30.00")

        class SerializationFailure(Exception):
            pgcode = "40001"

        service = SettlementService(db_session)

        def conflicting_apply(updates, **kwargs):
            raise OperationalError("COMMIT", {}, SerializationFailure())

        service.store.apply_updates = conflicting_apply

        with pytest.raises(ConcurrencyConflict) as exc_info:
            service.settle_payment(customer.id, Decimal("10.00"))
        assert exc_info.value.retryable

    def test_sequence_of_payments_keeps_ledger_consistent(self, db_session, customer, open_credit_sale):
        sale_ids = [open_credit_sale(customer, amount, minutes=i) for i, amount in enumerate(["12.50", "7.30", "40.00"])]
        service = SettlementService(db_session)

        for amount in ["5.00", "10.00", "0.80", "20.00"]:
            service.settle_payment(customer.id, Decimal(amount))

        total_paid = Decimal("0")
        for sale_id in sale_ids:
            row = db_session.get(CreditSale, sale_id)
            assert Decimal("0") <= row.amount_paid <= row.original_amount
            assert row.settled == (row.amount_paid == row.original_amount)
            assert sum(p.amount for p in row.payments) == row.amount_paid
            total_paid += row.amount_paid

        assert total_paid == Decimal("35.80")
        assert service.get_open_balance(customer.id).total_owed == Decimal("59.80") - Decimal("35.80")

    def test_customers_do_not_interfere(self, db_session, customer, open_credit_sale):
        other = Customer(name="Dona Maria")
        db_session.add(other)
        db_session.commit()
        mine = open_credit_sale(customer, "10.00")
        theirs = open_credit_sale(other, "10.00")

        SettlementService(db_session).settle_payment(customer.id, Decimal("10.00"))

        assert ledger_state(db_session, mine)[1] is True
        assert ledger_state(db_session, theirs) == (Decimal("0.00"), False, None)


# ===== LEDGER STORE =====

class TestLedgerStore:

    def test_stale_update_raises_conflict(self, db_session, customer, open_credit_sale):
        sale_id = open_credit_sale(customer, "30.00", amount_paid="10.00")
        store = LedgerStore(db_session)

        with pytest.raises(ConcurrencyConflict):
            store.apply_updates([SaleUpdate(
                sale_id=sale_id,
                customer_id=customer.id,
                expected_amount_paid=Decimal("5.00"),
                new_amount_paid=Decimal("15.00"),
                amount_applied=Decimal("10.00"),
                settled=False
            )])
        db_session.rollback()

        assert ledger_state(db_session, sale_id)[0] == Decimal("10.00")

    def test_open_sales_order_and_owed_totals(self, db_session, customer, open_credit_sale):
        late = open_credit_sale(customer, "5.00", minutes=30)
        early = open_credit_sale(customer, "8.00", minutes=0, amount_paid="3.00")
        store = LedgerStore(db_session)

        assert [e.id for e in store.load_open_sales(customer.id)] == [early, late]
        assert store.owed_by_customer() == {customer.id: Decimal("10.00")}
        assert store.total_outstanding() == Decimal("10.00")
        assert store.load_sale(999) is None


# ===== ENDPOINTS =====

class TestCreditEndpoints:

    def test_requires_authentication(self, client, customer):
        response = client.get(f"/credit/customers/{customer.id}/balance")
        assert response.status_code == 401

    def test_customer_payment_flow(self, client, auth_headers, customer, open_credit_sale):
        oldest = open_credit_sale(customer, "30.00", minutes=0)
        newest = open_credit_sale(customer, "50.00", minutes=10)

        response = client.post(
            f"/credit/customers/{customer.id}/payments",
            json={"amount": "40.00"},
            headers=auth_headers
        )
        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["applied_amount"]) == Decimal("40")
        assert [s["id"] for s in body["settled_sales"]] == [oldest]
        assert Decimal(body["settled_sales"][0]["original_amount"]) == Decimal("30")
        assert body["partially_paid_sales"][0]["id"] == newest
        assert Decimal(body["partially_paid_sales"][0]["new_balance"]) == Decimal("40")

        balance = client.get(f"/credit/customers/{customer.id}/balance", headers=auth_headers).json()
        assert Decimal(balance["total_owed"]) == Decimal("40")
        assert [s["id"] for s in balance["open_sales"]] == [newest]

        payments = client.get(f"/credit/sales/{newest}/payments", headers=auth_headers).json()
        assert [Decimal(p["amount"]) for p in payments] == [Decimal("10")]

    def test_payment_errors_map_to_http(self, client, auth_headers, customer, open_credit_sale):
        sale_id = open_credit_sale(customer, "100.00")

        over = client.post(f"/credit/customers/{customer.id}/payments", json={"amount": 150}, headers=auth_headers)
        assert over.status_code == 400
        zero = client.post(f"/credit/customers/{customer.id}/payments", json={"amount": 0}, headers=auth_headers)
        assert zero.status_code == 400
        missing = client.post("/credit/sales/999/payments", json={"amount": 1}, headers=auth_headers)
        assert missing.status_code == 404

        settle = client.post(f"/credit/sales/{sale_id}/settle", headers=auth_headers)
        assert settle.status_code == 200
        assert settle.json()["settled"] is True

        again = client.post(f"/credit/sales/{sale_id}/payments", json={"amount": 1}, headers=auth_headers)
        assert again.status_code == 409

        nothing = client.post(f"/credit/customers/{customer.id}/payments", json={"amount": 1}, headers=auth_headers)
        assert nothing.status_code == 404

    def test_out_of_range_amount_returns_400(self, client, auth_headers, customer, open_credit_sale):
        sale_id = open_credit_sale(customer, "100.00")

        response = client.post(f"/credit/customers/{customer.id}/payments", json={"amount": "1e30"}, headers=auth_headers)
        assert response.status_code == 400
        response = client.post(f"/credit/sales/{sale_id}/payments", json={"amount": "1e30"}, headers=auth_headers)
        assert response.status_code == 400

    def test_unknown_customer_reads_return_404(self, client, auth_headers):
        assert client.get("/credit/customers/999/balance", headers=auth_headers).status_code == 404
        assert client.get("/credit/customers/999/sales", headers=auth_headers).status_code == 404

    def test_settle_all_and_debtors(self, client, auth_headers, db_session, customer, open_credit_sale):
        other = Customer(name="Dona Maria")
        db_session.add(other)
        db_session.commit()
        open_credit_sale(customer, "20.00", minutes=0)
        open_credit_sale(customer, "35.00", minutes=1)
        open_credit_sale(other, "80.00", minutes=2)

        debtors = client.get("/credit/debtors", headers=auth_headers).json()
        assert [d["name"] for d in debtors] == ["Dona Maria", "Seu Jorge"]

        response = client.post(f"/credit/customers/{customer.id}/settle-all", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["settled_count"] == 2
        assert Decimal(response.json()["total_amount"]) == Decimal("55")

        debtors = client.get("/credit/debtors", headers=auth_headers).json()
        assert [d["customer_id"] for d in debtors] == [other.id]

    def test_credit_history_includes_items(self, client, auth_headers, customer, product):
        created = client.post("/sales/", json={
            "customer_id": customer.id,
            "is_credit": True,
            "items": [{"product_id": product.id, "quantity": 2}]
        }, headers=auth_headers)
        assert created.status_code == 201

        history = client.get(f"/credit/customers/{customer.id}/sales", headers=auth_headers)
        assert history.status_code == 200
        entries = history.json()
        assert len(entries) == 1
        assert entries[0]["settled"] is False
        assert Decimal(entries[0]["owed"]) == Decimal("22.00")
        assert entries[0]["items"][0]["product_name"] == "Cigarro Maço"

        assert client.get("/credit/customers/999/sales", headers=auth_headers).status_code == 404
