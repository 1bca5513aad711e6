from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from datetime import datetime


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    cost_price: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    sale_price: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    credit_price: Decimal = Field(Decimal("0"), ge=0, decimal_places=2, description="Precio cobrado en ventas fiado")
    stock_quantity: int = Field(0, ge=0)
    min_stock: int = Field(0, ge=0)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('El nombre del producto es obligatorio')
        return v.strip()


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    cost_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    sale_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    credit_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    stock_quantity: Optional[int] = Field(None, ge=0)
    min_stock: Optional[int] = Field(None, ge=0)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if v is not None and not v.strip():
            raise ValueError('El nombre del producto es obligatorio')
        return v.strip() if v else v


class ProductOut(ProductBase):
    id: int
    is_low_stock: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProductList(BaseModel):
    products: List[ProductOut]
    total: int
