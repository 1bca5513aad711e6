from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from datetime import datetime


class SaleItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0, description="Cantidad debe ser mayor a 0")
    unit_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="Si se omite se usa el precio del producto")


class SaleCreate(BaseModel):
    customer_id: Optional[int] = None
    is_credit: bool = False
    items: List[SaleItemCreate] = Field(..., min_length=1, description="Debe incluir al menos un item")

    @field_validator('items')
    @classmethod
    def validate_items(cls, v):
        if not v:
            raise ValueError('Debe incluir al menos un item en la venta')
        return v

    @model_validator(mode='after')
    def validate_credit_customer(self):
        if self.is_credit and self.customer_id is None:
            raise ValueError('Las ventas fiado requieren un cliente')
        return self


class SaleItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    class Config:
        from_attributes = True


class SaleOut(BaseModel):
    id: int
    customer_id: Optional[int] = None
    total: Decimal
    is_credit: bool
    sold_at: datetime
    credit_sale_id: Optional[int] = None

    class Config:
        from_attributes = True


class SaleDetail(SaleOut):
    items: List[SaleItemOut]


class SaleList(BaseModel):
    sales: List[SaleOut]
    total: int
    limit: int
    offset: int
