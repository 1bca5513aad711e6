from fastapi import APIRouter, status, Depends, Query
from sqlalchemy.orm import Session
from app.common.cache import dashboard_cache
from app.dependencies.dbDependecies import get_db
from app.modules.auth.dependencies import require_auth
from app.modules.products import service
from app.modules.products.schemas import ProductCreate, ProductUpdate, ProductOut, ProductList

product_router = APIRouter(prefix="/products", tags=["Products"], dependencies=[Depends(require_auth)])


@product_router.get("/", response_model=ProductList)
def list_products(
    low_stock: bool = Query(False, description="Solo productos con stock en o bajo el mínimo"),
    db: Session = Depends(get_db)
):
    """List products ordered by name."""
    return service.get_all_products(db, low_stock=low_stock)


@product_router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return service.get_product_by_id(db, product_id)


@product_router.post("/", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(data: ProductCreate, db: Session = Depends(get_db)):
    """Create a new product."""
    product = service.create_product(db, data)
    dashboard_cache.invalidate()
    return product


@product_router.patch("/{product_id}", response_model=ProductOut)
def update_product(product_id: int, data: ProductUpdate, db: Session = Depends(get_db)):
    """Update prices, stock or name of a product."""
    product = service.update_product(db, product_id, data)
    dashboard_cache.invalidate()
    return product
