from app.database.database import Base
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Numeric, CheckConstraint, Index
from sqlalchemy.orm import relationship
from app.common.mixins import TimestampMixin, utcnow


class CreditSale(Base, TimestampMixin):
    """
    Entrada del ledger de fiado: una venta con pago diferido.

    original_amount es inmutable; amount_paid solo crece y únicamente lo
    modifica el SettlementService. Las filas nunca se borran.
    """
    __tablename__ = "credit_sales"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False, unique=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)

    original_amount = Column(Numeric(10, 2), nullable=False)
    amount_paid = Column(Numeric(10, 2), nullable=False, default=0)
    settled = Column(Boolean, nullable=False, default=False)
    settled_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    sale = relationship("Sale", back_populates="credit_sale")
    customer = relationship("Customer", back_populates="credit_sales")
    payments = relationship("CreditPayment", back_populates="credit_sale", order_by="CreditPayment.id")

    __table_args__ = (
        CheckConstraint("original_amount > 0", name="ck_credit_sale_amount_positive"),
        CheckConstraint("amount_paid >= 0 AND amount_paid <= original_amount", name="ck_credit_sale_paid_range"),
        Index("idx_credit_sales_open", "customer_id", "settled", "created_at"),
    )

    @property
    def owed(self):
        return self.original_amount - self.amount_paid


class CreditPayment(Base):
    """Registro de auditoría: un renglón por cada monto aplicado a una venta fiado."""
    __tablename__ = "credit_payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    credit_sale_id = Column(Integer, ForeignKey("credit_sales.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    note = Column(String(100), nullable=True)

    credit_sale = relationship("CreditSale", back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_credit_payment_amount_positive"),
    )
