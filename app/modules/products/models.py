from app.database.database import Base
from sqlalchemy import Column, Integer, String, Numeric, CheckConstraint, Index
from app.common.mixins import TimestampMixin


class Product(Base, TimestampMixin):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    cost_price = Column(Numeric(10, 2), nullable=False, default=0)  # Precio de costo
    sale_price = Column(Numeric(10, 2), nullable=False, default=0)  # Precio de venta a la vista
    credit_price = Column(Numeric(10, 2), nullable=False, default=0)  # Precio de venta fiado
    stock_quantity = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("sale_price >= 0 AND cost_price >= 0 AND credit_price >= 0", name="ck_product_prices"),
        Index("idx_products_stock", "stock_quantity", "min_stock"),
    )

    @property
    def is_low_stock(self) -> bool:
        return (self.stock_quantity or 0) <= (self.min_stock or 0)

    def price_for(self, is_credit: bool):
        """Precio unitario por defecto según el tipo de venta"""
        if is_credit and self.credit_price and self.credit_price > 0:
            return self.credit_price
        return self.sale_price
