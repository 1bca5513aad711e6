"""
Acceso a datos del ledger de fiado (SQLAlchemy).

El store no confirma transacciones: el SettlementService decide cuándo hacer
commit o rollback, de modo que todas las escrituras de una liquidación se
aplican juntas o ninguna.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
import logging

from sqlalchemy import select, update, func, text
from sqlalchemy.orm import Session

from app.common.mixins import as_utc
from app.core.config import settings
from app.modules.customers.models import Customer
from app.modules.ledger.allocator import LedgerEntry, ZERO
from app.modules.ledger.exceptions import ConcurrencyConflict
from app.modules.ledger.models import CreditSale, CreditPayment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleUpdate:
    sale_id: int
    customer_id: int
    expected_amount_paid: Decimal
    new_amount_paid: Decimal
    amount_applied: Decimal
    settled: bool
    settled_at: Optional[datetime] = None


def to_entry(row: CreditSale) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,
        customer_id=row.customer_id,
        original_amount=Decimal(row.original_amount),
        amount_paid=Decimal(row.amount_paid),
        created_at=as_utc(row.created_at),
        settled=bool(row.settled),
    )


class LedgerStore:
    def __init__(self, db: Session):
        self.db = db

    def lock_customer(self, customer_id: int) -> bool:
        """
        Toma el lock exclusivo del cliente hasta el fin de la transacción.

        En PostgreSQL es un ``SELECT ... FOR UPDATE`` sobre la fila del cliente,
        limitado por ``LEDGER_LOCK_TIMEOUT_MS``. Devuelve False si el cliente
        no existe.
        """
        if self.db.get_bind().dialect.name == "postgresql" and settings.LEDGER_LOCK_TIMEOUT_MS:
            self.db.execute(text(f"SET LOCAL lock_timeout = '{int(settings.LEDGER_LOCK_TIMEOUT_MS)}ms'"))
        locked = self.db.execute(
            select(Customer.id).where(Customer.id == customer_id).with_for_update()
        ).scalar_one_or_none()
        return locked is not None

    def customer_exists(self, customer_id: int) -> bool:
        return self.db.execute(
            select(func.count(Customer.id)).where(Customer.id == customer_id)
        ).scalar() > 0

    def load_open_sales(self, customer_id: int) -> List[LedgerEntry]:
        rows = self.db.execute(
            select(CreditSale)
            .where(CreditSale.customer_id == customer_id, CreditSale.settled.is_(False))
            .order_by(CreditSale.created_at.asc(), CreditSale.id.asc())
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [to_entry(row) for row in rows]

    def load_sale(self, sale_id: int) -> Optional[LedgerEntry]:
        row = self.db.execute(
            select(CreditSale)
            .where(CreditSale.id == sale_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return to_entry(row) if row else None

    def apply_updates(self, updates: Iterable[SaleUpdate], note: Optional[str] = None, paid_at: Optional[datetime] = None) -> int:
        """
        Escribe los nuevos montos pagados y un CreditPayment por venta.

        Cada UPDATE está condicionado al amount_paid leído; si otra transacción
        cambió la fila entre la lectura y la escritura se lanza
        ConcurrencyConflict y el llamador debe hacer rollback.
        """
        applied = 0
        for item in updates:
            values = {"amount_paid": item.new_amount_paid, "settled": item.settled}
            if item.settled:
                values["settled_at"] = item.settled_at
            result = self.db.execute(
                update(CreditSale)
                .where(
                    CreditSale.id == item.sale_id,
                    CreditSale.settled.is_(False),
                    CreditSale.amount_paid == item.expected_amount_paid,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConcurrencyConflict(
                    f"La venta fiado {item.sale_id} cambió durante la liquidación"
                )
            payment = CreditPayment(
                credit_sale_id=item.sale_id,
                customer_id=item.customer_id,
                amount=item.amount_applied,
                note=note,
            )
            if paid_at is not None:
                payment.paid_at = paid_at
            self.db.add(payment)
            applied += 1
        self.db.flush()
        return applied

    def owed_by_customer(self, customer_ids: Optional[Iterable[int]] = None) -> Dict[int, Decimal]:
        """Total adeudado por cliente, recalculado siempre desde las ventas en abierto."""
        query = (
            select(
                CreditSale.customer_id,
                func.coalesce(func.sum(CreditSale.original_amount - CreditSale.amount_paid), 0),
            )
            .where(CreditSale.settled.is_(False))
            .group_by(CreditSale.customer_id)
        )
        if customer_ids is not None:
            query = query.where(CreditSale.customer_id.in_(list(customer_ids)))
        return {
            customer_id: Decimal(owed).quantize(Decimal("0.01"))
            for customer_id, owed in self.db.execute(query).all()
        }

    def total_outstanding(self) -> Decimal:
        owed = self.db.execute(
            select(func.coalesce(func.sum(CreditSale.original_amount - CreditSale.amount_paid), 0))
            .where(CreditSale.settled.is_(False))
        ).scalar()
        return Decimal(owed or ZERO).quantize(Decimal("0.01"))

    def customer_history(self, customer_id: int) -> List[CreditSale]:
        return self.db.execute(
            select(CreditSale)
            .where(CreditSale.customer_id == customer_id)
            .order_by(CreditSale.created_at.desc(), CreditSale.id.desc())
        ).scalars().all()

    def payments_for_sale(self, sale_id: int) -> List[CreditPayment]:
        return self.db.execute(
            select(CreditPayment)
            .where(CreditPayment.credit_sale_id == sale_id)
            .order_by(CreditPayment.paid_at.asc(), CreditPayment.id.asc())
        ).scalars().all()
