from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.common.cache import dashboard_cache
from app.dependencies.dbDependecies import get_db
from app.modules.auth.dependencies import require_auth
from app.modules.dashboard.schemas import DashboardMetrics, ChartResponse
from app.modules.dashboard.service import DashboardService

router = APIRouter(prefix="/dashboard", tags=["Dashboard"], dependencies=[Depends(require_auth)])


@router.get("/", response_model=DashboardMetrics)
def get_dashboard(db: Session = Depends(get_db)):
    """
    Métricas del dashboard: ventas del día/semana/mes, fiado del día,
    fiado pagado hoy, saldo fiado total y conteos de stock/clientes.
    """
    return dashboard_cache.get("metrics", lambda: DashboardService(db).get_metrics())


@router.get("/chart", response_model=ChartResponse)
def get_dashboard_chart(
    months: int = Query(6, ge=1, le=24, description="Cantidad de meses a mostrar"),
    db: Session = Depends(get_db)
):
    """Ventas a la vista, ventas fiado y fiado pagado por mes."""
    return dashboard_cache.get(f"chart:{months}", lambda: DashboardService(db).get_chart(months))
