"""
Router del ledger de fiado

Endpoints de consulta de saldos y de liquidación (pagos parciales, pago de
una venta, pago total del cliente). Toda escritura invalida el cache del
dashboard después del commit.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List

from app.common.cache import dashboard_cache
from app.dependencies.dbDependecies import get_db
from app.modules.auth.dependencies import require_auth
from app.modules.customers.models import Customer
from app.modules.ledger.exceptions import LedgerError
from app.modules.ledger.service import SettlementService, SettlementReport
from app.modules.ledger.schemas import (
    PaymentRequest, SettlementOut, SettledSaleOut, PartiallyPaidSaleOut,
    SingleSaleSettlementOut, SettleAllOut, OpenBalanceOut, OpenSaleOut,
    DebtorOut, CreditSaleHistoryOut, CreditSaleItemOut, CreditPaymentOut
)

router = APIRouter(
    prefix="/credit",
    tags=["Credit"],
    dependencies=[Depends(require_auth)],
    responses={404: {"description": "Not found"}}
)


def _http_error(exc: LedgerError) -> HTTPException:
    headers = {"Retry-After": "1"} if exc.retryable else None
    return HTTPException(status_code=exc.status_code, detail=exc.message, headers=headers)


def _settlement_out(report: SettlementReport) -> SettlementOut:
    return SettlementOut(
        customer_id=report.customer_id,
        applied_amount=report.applied_amount,
        settled_sales=[
            SettledSaleOut(id=a.sale_id, original_amount=a.original_amount, amount_applied=a.amount_applied)
            for a in report.allocation.settled
        ],
        partially_paid_sales=[
            PartiallyPaidSaleOut(id=a.sale_id, amount_applied=a.amount_applied, new_balance=a.new_balance)
            for a in report.allocation.partially_paid
        ],
        remaining_owed=report.remaining_owed,
    )


# ===== CONSULTAS =====

@router.get("/debtors", response_model=List[DebtorOut])
def list_debtors(db: Session = Depends(get_db)):
    """Clientes con saldo fiado pendiente, del mayor al menor."""
    service = SettlementService(db)
    owed = service.store.owed_by_customer()
    if not owed:
        return []
    customers = db.query(Customer).filter(Customer.id.in_(list(owed))).all()
    debtors = [
        DebtorOut(customer_id=c.id, name=c.name, total_owed=owed[c.id])
        for c in customers if owed[c.id] > 0
    ]
    return sorted(debtors, key=lambda d: (-d.total_owed, d.name))


@router.get("/customers/{customer_id}/balance", response_model=OpenBalanceOut)
def get_open_balance(customer_id: int, db: Session = Depends(get_db)):
    """Saldo total y ventas en abierto del cliente (orden de asignación)."""
    try:
        balance = SettlementService(db).get_open_balance(customer_id)
    except LedgerError as e:
        raise _http_error(e)
    return OpenBalanceOut(
        customer_id=balance.customer_id,
        total_owed=balance.total_owed,
        open_sales=[
            OpenSaleOut(
                id=e.id,
                owed=e.owed,
                original_amount=e.original_amount,
                amount_paid=e.amount_paid,
                created_at=e.created_at,
            )
            for e in balance.open_sales
        ],
    )


@router.get("/customers/{customer_id}/sales", response_model=List[CreditSaleHistoryOut])
def get_customer_credit_history(customer_id: int, db: Session = Depends(get_db)):
    """Historial completo de ventas fiado del cliente (abiertas y quitadas)."""
    try:
        history = SettlementService(db).get_credit_history(customer_id)
    except LedgerError as e:
        raise _http_error(e)
    return [
        CreditSaleHistoryOut(
            id=cs.id,
            sale_id=cs.sale_id,
            created_at=cs.created_at,
            original_amount=cs.original_amount,
            amount_paid=cs.amount_paid,
            owed=cs.owed,
            settled=cs.settled,
            settled_at=cs.settled_at,
            items=[
                CreditSaleItemOut(
                    product_id=item.product_id,
                    product_name=item.product.name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                )
                for item in cs.sale.items
            ],
        )
        for cs in history
    ]


@router.get("/sales/{sale_id}/payments", response_model=List[CreditPaymentOut])
def get_sale_payments(sale_id: int, db: Session = Depends(get_db)):
    service = SettlementService(db)
    if service.store.load_sale(sale_id) is None:
        raise HTTPException(status_code=404, detail="Venta fiado no encontrada")
    return service.store.payments_for_sale(sale_id)


# ===== LIQUIDACIONES =====

@router.post("/customers/{customer_id}/payments", response_model=SettlementOut)
def settle_customer_payment(customer_id: int, payment: PaymentRequest, db: Session = Depends(get_db)):
    """
    Registrar un pago del cliente

    El monto se aplica a las ventas en abierto de la más antigua a la más
    reciente. No puede exceder el total adeudado.
    """
    try:
        report = SettlementService(db).settle_payment(customer_id, payment.amount)
    except LedgerError as e:
        raise _http_error(e)
    dashboard_cache.invalidate()
    return _settlement_out(report)


@router.post("/customers/{customer_id}/settle-all", response_model=SettleAllOut)
def settle_all_open_sales(customer_id: int, db: Session = Depends(get_db)):
    """Quitar todas las ventas fiado en abierto del cliente."""
    try:
        report = SettlementService(db).settle_all_open_sales(customer_id)
    except LedgerError as e:
        raise _http_error(e)
    dashboard_cache.invalidate()
    return SettleAllOut(
        customer_id=report.customer_id,
        settled_count=report.settled_count,
        total_amount=report.total_amount,
        sale_ids=report.sale_ids,
    )


@router.post("/sales/{sale_id}/payments", response_model=SingleSaleSettlementOut)
def settle_single_sale(sale_id: int, payment: PaymentRequest, db: Session = Depends(get_db)):
    """Pago parcial o total de una venta fiado específica."""
    try:
        report = SettlementService(db).settle_single_sale(sale_id, payment.amount)
    except LedgerError as e:
        raise _http_error(e)
    dashboard_cache.invalidate()
    return SingleSaleSettlementOut(**report.__dict__)


@router.post("/sales/{sale_id}/settle", response_model=SingleSaleSettlementOut)
def settle_sale_in_full(sale_id: int, db: Session = Depends(get_db)):
    """Quitar una venta fiado pagando todo su saldo."""
    try:
        report = SettlementService(db).settle_sale_in_full(sale_id)
    except LedgerError as e:
        raise _http_error(e)
    dashboard_cache.invalidate()
    return SingleSaleSettlementOut(**report.__dict__)
