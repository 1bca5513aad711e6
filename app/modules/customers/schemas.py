from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import List
from datetime import datetime


class CustomerBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('El nombre del cliente es obligatorio')
        return v.strip()


class CustomerCreate(CustomerBase):
    pass


class CustomerUpdate(CustomerBase):
    pass


class CustomerOut(CustomerBase):
    id: int
    total_owed: Decimal = Decimal("0.00")
    created_at: datetime

    class Config:
        from_attributes = True


class CustomerList(BaseModel):
    customers: List[CustomerOut]
    total: int
