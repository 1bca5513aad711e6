"""
Distribución de pagos de fiado (oldest-first).

Cálculo puro: no toca la base de datos ni el reloj. Recibe una foto de las
ventas en abierto de un cliente y un monto, y devuelve cuánto se aplica a cada
venta y cuáles quedan quitadas.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Iterable, List, Tuple

from app.modules.ledger.exceptions import InvalidPaymentAmount, NoOpenSales

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class AllocationState(str, Enum):
    PARTIALLY_PAID = "partially_paid"
    FULLY_SETTLED = "fully_settled"


@dataclass(frozen=True)
class LedgerEntry:
    """Foto inmutable de una CreditSale tal como la lee el store."""
    id: int
    customer_id: int
    original_amount: Decimal
    amount_paid: Decimal
    created_at: datetime
    settled: bool = False

    @property
    def owed(self) -> Decimal:
        return self.original_amount - self.amount_paid


@dataclass(frozen=True)
class Allocation:
    sale_id: int
    amount_applied: Decimal
    state: AllocationState
    original_amount: Decimal
    previous_amount_paid: Decimal

    @property
    def new_amount_paid(self) -> Decimal:
        return self.previous_amount_paid + self.amount_applied

    @property
    def new_balance(self) -> Decimal:
        return self.original_amount - self.new_amount_paid

    @property
    def settles(self) -> bool:
        return self.state is AllocationState.FULLY_SETTLED


@dataclass(frozen=True)
class PaymentAllocation:
    allocations: Tuple[Allocation, ...]
    remainder: Decimal

    @property
    def total_applied(self) -> Decimal:
        return sum((a.amount_applied for a in self.allocations), ZERO)

    @property
    def settled(self) -> List[Allocation]:
        return [a for a in self.allocations if a.settles]

    @property
    def partially_paid(self) -> List[Allocation]:
        return [a for a in self.allocations if not a.settles]


def to_money(value) -> Decimal:
    """
    Convierte un monto a Decimal con centavos exactos.

    Rechaza valores no numéricos, no finitos o con más de dos decimales en
    lugar de redondearlos: redondear crearía o destruiría dinero.
    """
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidPaymentAmount(f"Monto de pago inválido: {value!r}")
    if not amount.is_finite():
        raise InvalidPaymentAmount(f"Monto de pago inválido: {value!r}")
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        # Más dígitos de los que admite el contexto decimal
        raise InvalidPaymentAmount(f"Monto de pago fuera de rango: {value}")
    if quantized != amount:
        raise InvalidPaymentAmount(f"El monto {value} tiene más de dos decimales")
    return quantized


def allocation_order(entry: LedgerEntry):
    return (entry.created_at, entry.id)


def order_open_sales(entries: Iterable[LedgerEntry]) -> List[LedgerEntry]:
    """Ventas no quitadas, de la más antigua a la más reciente (desempate por id)."""
    return sorted((e for e in entries if not e.settled), key=allocation_order)


def total_owed(entries: Iterable[LedgerEntry]) -> Decimal:
    return sum((e.owed for e in entries if not e.settled), ZERO)


def allocate_payment(open_sales: Iterable[LedgerEntry], payment_amount) -> PaymentAllocation:
    """
    Reparte ``payment_amount`` sobre ``open_sales`` empezando por la más antigua.

    Raises:
        NoOpenSales: no hay ventas en abierto.
        InvalidPaymentAmount: monto <= 0 o mayor que el total adeudado.
    """
    ordered = order_open_sales(open_sales)
    if not ordered:
        raise NoOpenSales("No hay ventas fiado en abierto")

    amount = to_money(payment_amount)
    if amount <= 0:
        raise InvalidPaymentAmount("El monto del pago debe ser mayor que cero")

    owed_total = total_owed(ordered)
    if amount > owed_total:
        raise InvalidPaymentAmount(
            f"El pago de {amount} excede el total adeudado de {owed_total}"
        )

    remaining = amount
    allocations = []
    for entry in ordered:
        if remaining == 0:
            break
        owed = entry.owed
        if owed <= 0:
            continue
        if remaining >= owed:
            applied, state = owed, AllocationState.FULLY_SETTLED
        else:
            applied, state = remaining, AllocationState.PARTIALLY_PAID
        allocations.append(Allocation(
            sale_id=entry.id,
            amount_applied=applied,
            state=state,
            original_amount=entry.original_amount,
            previous_amount_paid=entry.amount_paid,
        ))
        remaining -= applied

    return PaymentAllocation(allocations=tuple(allocations), remainder=remaining)
