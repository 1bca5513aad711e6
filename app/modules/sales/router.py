from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.common.cache import dashboard_cache
from app.core.config import settings
from app.dependencies.dbDependecies import get_db
from app.modules.auth.dependencies import require_auth
from app.modules.sales.service import SaleService
from app.modules.sales.schemas import SaleCreate, SaleDetail, SaleList

router = APIRouter(prefix="/sales", tags=["Sales"], dependencies=[Depends(require_auth)])


@router.post("/", response_model=SaleDetail, status_code=status.HTTP_201_CREATED)
def create_sale(sale_data: SaleCreate, db: Session = Depends(get_db)):
    """
    Registrar una venta

    Descuenta el stock de los productos. Con is_credit=true la venta queda
    en el fiado del cliente.
    """
    sale = SaleService(db).create_sale(sale_data)
    dashboard_cache.invalidate()
    return sale


@router.get("/", response_model=SaleList)
def list_sales(
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    customer_id: Optional[int] = Query(None, description="Filtrar por cliente"),
    is_credit: Optional[bool] = Query(None, description="Solo fiado / solo a la vista"),
    db: Session = Depends(get_db)
):
    """Listar ventas, de la más reciente a la más antigua."""
    return SaleService(db).get_sales(customer_id, is_credit, limit, offset)


@router.get("/{sale_id}", response_model=SaleDetail)
def get_sale(sale_id: int, db: Session = Depends(get_db)):
    return SaleService(db).get_sale_by_id(sale_id)
