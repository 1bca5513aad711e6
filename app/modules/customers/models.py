from app.database.database import Base
from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship
from app.common.mixins import TimestampMixin


class Customer(Base, TimestampMixin):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)

    # Relationships
    sales = relationship("Sale", back_populates="customer")
    credit_sales = relationship("CreditSale", back_populates="customer")
