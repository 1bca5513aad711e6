from app.database.database import Base
from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, Numeric, Index
from sqlalchemy.orm import relationship
from app.common.mixins import utcnow


class Sale(Base):
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    total = Column(Numeric(10, 2), nullable=False)
    is_credit = Column(Boolean, nullable=False, default=False)  # Venta fiado
    sold_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    customer = relationship("Customer", back_populates="sales")
    items = relationship("SaleItem", back_populates="sale", cascade="all, delete-orphan", order_by="SaleItem.id")
    credit_sale = relationship("CreditSale", back_populates="sale", uselist=False)

    __table_args__ = (
        Index("idx_sales_sold_at", "sold_at"),
        Index("idx_sales_credit", "is_credit", "sold_at"),
    )

    @property
    def credit_sale_id(self):
        return self.credit_sale.id if self.credit_sale else None


class SaleItem(Base):
    __tablename__ = "sale_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)  # quantity * unit_price

    # Relationships
    sale = relationship("Sale", back_populates="items")
    product = relationship("Product")
