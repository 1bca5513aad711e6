from fastapi import HTTPException, status
from sqlalchemy.orm import Session
import logging

from app.modules.products.models import Product
from app.modules.products.schemas import ProductCreate, ProductUpdate, ProductList

logger = logging.getLogger(__name__)


def get_all_products(db: Session, low_stock: bool = False) -> ProductList:
    """Listar productos ordenados por nombre."""
    query = db.query(Product)
    if low_stock:
        query = query.filter(Product.stock_quantity <= Product.min_stock)
    products = query.order_by(Product.name, Product.id).all()
    return ProductList(products=products, total=len(products))


def get_product_by_id(db: Session, product_id: int) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Producto no encontrado"
        )
    return product


def create_product(db: Session, data: ProductCreate) -> Product:
    try:
        product = Product(**data.model_dump())
        db.add(product)
        db.commit()
        db.refresh(product)
        logger.info(f"Product created: id={product.id} name={product.name!r}")
        return product
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating product: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error creando producto: {str(e)}"
        )


def update_product(db: Session, product_id: int, data: ProductUpdate) -> Product:
    product = get_product_by_id(db, product_id)
    changes = data.model_dump(exclude_unset=True)
    try:
        for field, value in changes.items():
            if value is not None:
                setattr(product, field, value)
        db.commit()
        db.refresh(product)
        logger.info(f"Product {product_id} updated: {sorted(changes)}")
        return product
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating product {product_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error actualizando producto: {str(e)}"
        )
