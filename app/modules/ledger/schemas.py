from pydantic import BaseModel, Field
from decimal import Decimal
from typing import List, Optional
from datetime import datetime


class PaymentRequest(BaseModel):
    # Sin gt=0: el servicio valida el monto y responde InvalidPaymentAmount
    amount: Decimal = Field(..., description="Monto del pago, máximo dos decimales")


# Respuestas de liquidación
class SettledSaleOut(BaseModel):
    id: int
    original_amount: Decimal
    amount_applied: Decimal


class PartiallyPaidSaleOut(BaseModel):
    id: int
    amount_applied: Decimal
    new_balance: Decimal


class SettlementOut(BaseModel):
    customer_id: int
    applied_amount: Decimal
    settled_sales: List[SettledSaleOut]
    partially_paid_sales: List[PartiallyPaidSaleOut]
    remaining_owed: Decimal


class SingleSaleSettlementOut(BaseModel):
    sale_id: int
    customer_id: int
    amount_applied: Decimal
    settled: bool
    new_balance: Decimal


class SettleAllOut(BaseModel):
    customer_id: int
    settled_count: int
    total_amount: Decimal
    sale_ids: List[int]


# Lecturas
class OpenSaleOut(BaseModel):
    id: int
    owed: Decimal
    original_amount: Decimal
    amount_paid: Decimal
    created_at: datetime


class OpenBalanceOut(BaseModel):
    customer_id: int
    total_owed: Decimal
    open_sales: List[OpenSaleOut]


class DebtorOut(BaseModel):
    customer_id: int
    name: str
    total_owed: Decimal


class CreditSaleItemOut(BaseModel):
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal


class CreditSaleHistoryOut(BaseModel):
    id: int
    sale_id: int
    created_at: datetime
    original_amount: Decimal
    amount_paid: Decimal
    owed: Decimal
    settled: bool
    settled_at: Optional[datetime] = None
    items: List[CreditSaleItemOut] = []


class CreditPaymentOut(BaseModel):
    id: int
    credit_sale_id: int
    amount: Decimal
    paid_at: datetime
    note: Optional[str] = None

    class Config:
        from_attributes = True
