from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload
from decimal import Decimal
from typing import Optional
import logging

from app.common.mixins import utcnow
from app.modules.customers.models import Customer
from app.modules.ledger.models import CreditSale
from app.modules.products.models import Product
from app.modules.sales.models import Sale, SaleItem
from app.modules.sales.schemas import SaleCreate, SaleList

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class SaleService:
    def __init__(self, db: Session):
        self.db = db

    def create_sale(self, sale_data: SaleCreate) -> Sale:
        """
        Registrar una venta (a la vista o fiado)

        En una sola transacción: crea la venta y sus items, descuenta el stock
        de cada producto y, si es fiado, abre la CreditSale correspondiente.
        """
        try:
            if sale_data.customer_id is not None:
                customer = self.db.query(Customer).filter(Customer.id == sale_data.customer_id).first()
                if not customer:
                    raise HTTPException(
                        status_code=status.HTTP_404_NOT_FOUND,
                        detail="Cliente no encontrado"
                    )

            # Bloquear los productos para que el descuento de stock sea consistente
            product_ids = sorted({item.product_id for item in sale_data.items})
            products = {
                p.id: p for p in self.db.query(Product)
                .filter(Product.id.in_(product_ids))
                .with_for_update()
                .all()
            }

            requested = {}
            for item in sale_data.items:
                if item.product_id not in products:
                    raise HTTPException(
                        status_code=status.HTTP_404_NOT_FOUND,
                        detail=f"Producto {item.product_id} no encontrado"
                    )
                requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

            for product_id, quantity in requested.items():
                product = products[product_id]
                if product.stock_quantity < quantity:
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail=f"Stock insuficiente para {product.name}: disponible {product.stock_quantity}, solicitado {quantity}"
                    )

            sold_at = utcnow()
            line_items = []
            total = Decimal("0.00")
            for item in sale_data.items:
                product = products[item.product_id]
                unit_price = item.unit_price if item.unit_price is not None else product.price_for(sale_data.is_credit)
                unit_price = Decimal(unit_price).quantize(CENT)
                subtotal = (unit_price * item.quantity).quantize(CENT)
                total += subtotal
                line_items.append(SaleItem(
                    product_id=product.id,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    subtotal=subtotal
                ))

            if total <= 0:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="El total de la venta debe ser mayor que cero"
                )

            sale = Sale(
                customer_id=sale_data.customer_id,
                total=total,
                is_credit=sale_data.is_credit,
                sold_at=sold_at,
                items=line_items
            )
            self.db.add(sale)

            for product_id, quantity in requested.items():
                product = products[product_id]
                old_quantity = product.stock_quantity
                product.stock_quantity = old_quantity - quantity
                logger.info(f"Stock for product {product_id}: {old_quantity} -> {product.stock_quantity}")

            if sale_data.is_credit:
                sale.credit_sale = CreditSale(
                    customer_id=sale_data.customer_id,
                    original_amount=total,
                    amount_paid=Decimal("0.00"),
                    settled=False,
                    created_at=sold_at
                )

            self.db.commit()
            self.db.refresh(sale)
            logger.info(f"Sale {sale.id} recorded: total={total} credit={sale.is_credit} customer={sale.customer_id}")
            return sale

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating sale: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error procesando venta: {str(e)}"
            )

    def get_sales(self, customer_id: Optional[int] = None, is_credit: Optional[bool] = None,
                  limit: int = 20, offset: int = 0) -> SaleList:
        query = self.db.query(Sale).options(selectinload(Sale.credit_sale))
        if customer_id is not None:
            query = query.filter(Sale.customer_id == customer_id)
        if is_credit is not None:
            query = query.filter(Sale.is_credit.is_(is_credit))
        total = query.count()
        sales = query.order_by(Sale.sold_at.desc(), Sale.id.desc()).offset(offset).limit(limit).all()
        return SaleList(sales=sales, total=total, limit=limit, offset=offset)

    def get_sale_by_id(self, sale_id: int) -> Sale:
        sale = self.db.query(Sale).options(
            selectinload(Sale.items),
            selectinload(Sale.credit_sale)
        ).filter(Sale.id == sale_id).first()
        if not sale:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Venta no encontrada"
            )
        return sale
