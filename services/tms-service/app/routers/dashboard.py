import logging
from datetime import date
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from .. import schemas
from app.database import get_db
from app.services.dashboard import DashboardAggregator, DashboardFilters
from tms_common.security import RequirePermission, Permissions, UserPayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])

@router.get("", response_model=schemas.DashboardResponse)
async def get_dashboard(
    task_status: Optional[str] = None,
    task_start_date: Optional[date] = None,
    task_end_date: Optional[date] = None,
    user_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.DASHBOARD_VIEW))
):
    """
    **Resumen General (Admin)**

    Conteos, histogramas por estado efectivo, carga por usuario, resumen de
    clientes y presupuesto. Cualquier fallo devuelve 500 sin datos parciales.
    """
    filters = DashboardFilters(
        task_status=task_status,
        task_start_date=task_start_date,
        task_end_date=task_end_date,
        user_id=user_id
    )
    try:
        return await DashboardAggregator(db).summary(filters)
    except Exception as e:
        logger.error(f"❌ Error calculando el dashboard: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch dashboard summary")
