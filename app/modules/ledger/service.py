"""
Servicio de liquidación de fiado

Orquesta cada pago de punta a punta:
1. Toma el lock exclusivo del cliente (serializa liquidaciones concurrentes)
2. Lee las ventas en abierto en orden de asignación
3. Ejecuta el allocator (cálculo puro)
4. Persiste montos pagados + registros CreditPayment en una sola transacción
5. Devuelve un reporte de conciliación

Cualquier fallo hace rollback completo; ningún estado parcial queda visible.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, TypeVar
import logging

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.mixins import utcnow
from app.modules.ledger.allocator import (
    LedgerEntry, PaymentAllocation, ZERO, allocate_payment, to_money, total_owed
)
from app.modules.ledger.exceptions import (
    ConcurrencyConflict, CustomerNotFound, InvalidPaymentAmount, LedgerError, NoOpenSales,
    PersistenceFailure, SaleAlreadySettled, SaleNotFound
)
from app.modules.ledger.models import CreditSale
from app.modules.ledger.store import LedgerStore, SaleUpdate

logger = logging.getLogger(__name__)

T = TypeVar("T")

# lock_not_available, serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"55P03", "40001", "40P01"}


@dataclass
class SettlementReport:
    customer_id: int
    applied_amount: Decimal
    allocation: PaymentAllocation
    remaining_owed: Decimal


@dataclass
class SingleSaleReport:
    sale_id: int
    customer_id: int
    amount_applied: Decimal
    settled: bool
    new_balance: Decimal


@dataclass
class SettleAllReport:
    customer_id: int
    settled_count: int
    total_amount: Decimal
    sale_ids: List[int] = field(default_factory=list)


@dataclass
class OpenBalance:
    customer_id: int
    total_owed: Decimal
    open_sales: List[LedgerEntry]


def translate_db_error(exc: SQLAlchemyError) -> LedgerError:
    sqlstate = getattr(getattr(exc, "orig", None), "pgcode", None)
    if isinstance(exc, DBAPIError) and sqlstate in RETRYABLE_SQLSTATES:
        return ConcurrencyConflict(f"Conflicto de concurrencia en el ledger ({sqlstate}); reintente la operación")
    return PersistenceFailure(f"Error de almacenamiento en el ledger: {exc.__class__.__name__}")


class SettlementService:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.store = LedgerStore(db)
        self.clock = clock

    # ===== Operaciones de escritura =====

    def settle_payment(self, customer_id: int, payment_amount) -> SettlementReport:
        """Aplica un pago al cliente empezando por la venta fiado más antigua."""
        def operation() -> SettlementReport:
            open_sales = self._load_open_sales_locked(customer_id)
            allocation = allocate_payment(open_sales, payment_amount)
            self._persist(allocation, customer_id, note="Pago de cliente")
            report = SettlementReport(
                customer_id=customer_id,
                applied_amount=allocation.total_applied,
                allocation=allocation,
                remaining_owed=total_owed(open_sales) - allocation.total_applied,
            )
            logger.info(
                f"Customer {customer_id} payment {report.applied_amount}: "
                f"settled={[a.sale_id for a in allocation.settled]} "
                f"partial={[a.sale_id for a in allocation.partially_paid]}"
            )
            return report

        return self._atomic(operation)

    def settle_single_sale(self, sale_id: int, payment_amount) -> SingleSaleReport:
        """Aplica un pago a una sola venta fiado (0 < monto <= saldo)."""
        def operation() -> SingleSaleReport:
            entry = self._load_sale_locked(sale_id)
            amount = to_money(payment_amount)
            if amount <= 0 or amount > entry.owed:
                raise InvalidPaymentAmount(
                    f"El pago debe ser mayor que cero y no exceder el saldo de {entry.owed}"
                )
            return self._settle_entry(entry, amount, note="Pago de venta")

        return self._atomic(operation)

    def settle_sale_in_full(self, sale_id: int) -> SingleSaleReport:
        """Quita una venta fiado pagando exactamente su saldo actual."""
        def operation() -> SingleSaleReport:
            entry = self._load_sale_locked(sale_id)
            return self._settle_entry(entry, entry.owed, note="Pago total de venta")

        return self._atomic(operation)

    def settle_all_open_sales(self, customer_id: int) -> SettleAllReport:
        """Quita todas las ventas en abierto del cliente (pago igual al total adeudado)."""
        def operation() -> SettleAllReport:
            open_sales = self._load_open_sales_locked(customer_id)
            allocation = allocate_payment(open_sales, total_owed(open_sales))
            self._persist(allocation, customer_id, note="Pago total de cliente")
            report = SettleAllReport(
                customer_id=customer_id,
                settled_count=len(allocation.settled),
                total_amount=allocation.total_applied,
                sale_ids=[a.sale_id for a in allocation.settled],
            )
            logger.info(f"Customer {customer_id} settled all: {report.settled_count} sales, {report.total_amount}")
            return report

        return self._atomic(operation)

    # ===== Lecturas =====

    def get_open_balance(self, customer_id: int) -> OpenBalance:
        self._require_customer(customer_id)
        open_sales = self.store.load_open_sales(customer_id)
        return OpenBalance(
            customer_id=customer_id,
            total_owed=total_owed(open_sales),
            open_sales=open_sales,
        )

    def get_credit_history(self, customer_id: int) -> List[CreditSale]:
        """Ventas fiado del cliente, abiertas y quitadas, de la más reciente a la más antigua."""
        self._require_customer(customer_id)
        return self.store.customer_history(customer_id)

    # ===== Internos =====

    def _require_customer(self, customer_id: int) -> None:
        if not self.store.customer_exists(customer_id):
            raise CustomerNotFound(f"Cliente {customer_id} no encontrado")

    def _load_open_sales_locked(self, customer_id: int) -> List[LedgerEntry]:
        if not self.store.lock_customer(customer_id):
            raise NoOpenSales(f"Cliente {customer_id} sin ventas fiado en abierto")
        open_sales = self.store.load_open_sales(customer_id)
        if not open_sales:
            raise NoOpenSales(f"Cliente {customer_id} sin ventas fiado en abierto")
        return open_sales

    def _load_sale_locked(self, sale_id: int) -> LedgerEntry:
        entry = self.store.load_sale(sale_id)
        if entry is None:
            raise SaleNotFound(f"Venta fiado {sale_id} no encontrada")
        if not self.store.lock_customer(entry.customer_id):
            raise SaleNotFound(f"Venta fiado {sale_id} no encontrada")
        # Releer bajo el lock: otra liquidación pudo confirmarse mientras esperábamos
        entry = self.store.load_sale(sale_id)
        if entry.settled:
            raise SaleAlreadySettled(f"La venta fiado {sale_id} ya está quitada")
        return entry

    def _settle_entry(self, entry: LedgerEntry, amount: Decimal, note: str) -> SingleSaleReport:
        allocation = allocate_payment([entry], amount)
        self._persist(allocation, entry.customer_id, note=note)
        applied = allocation.allocations[0]
        logger.info(f"Credit sale {entry.id} paid {amount}: new balance {applied.new_balance}")
        return SingleSaleReport(
            sale_id=entry.id,
            customer_id=entry.customer_id,
            amount_applied=applied.amount_applied,
            settled=applied.settles,
            new_balance=applied.new_balance,
        )

    def _persist(self, allocation: PaymentAllocation, customer_id: int, note: Optional[str]) -> None:
        if allocation.remainder != ZERO:
            raise InvalidPaymentAmount(f"Quedó un remanente sin asignar de {allocation.remainder}")
        now = self.clock()
        updates = [
            SaleUpdate(
                sale_id=a.sale_id,
                customer_id=customer_id,
                expected_amount_paid=a.previous_amount_paid,
                new_amount_paid=a.new_amount_paid,
                amount_applied=a.amount_applied,
                settled=a.settles,
                settled_at=now if a.settles else None,
            )
            for a in allocation.allocations
        ]
        self.store.apply_updates(updates, note=note, paid_at=now)

    def _atomic(self, operation: Callable[[], T]) -> T:
        """Ejecuta ``operation`` y confirma; ante cualquier fallo hace rollback completo."""
        try:
            result = operation()
            self.db.commit()
            return result
        except LedgerError as e:
            self.db.rollback()
            logger.warning(f"Settlement refused: {e.__class__.__name__}: {e.message}")
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            error = translate_db_error(e)
            logger.error(f"Settlement failed: {error.message}", exc_info=True)
            raise error from e
