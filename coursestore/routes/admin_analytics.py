import io
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlmodel import Session

from coursestore.database import get_session
from coursestore.dependencies.admin import require_admin
from coursestore.models.user import User
from coursestore.services.statistics import build_statistics_workbook, compute_statistics

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("")
def sales_statistics(
    period: Optional[str] = None,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    return compute_statistics(session, actor=admin, period=period)


@router.get("/export")
def export_statistics(
    period: Optional[str] = None,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    stats = compute_statistics(session, actor=admin, period=period)
    filename = f"sales_{stats['period']}_{datetime.utcnow():%Y%m%d}.xlsx"

    return StreamingResponse(
        io.BytesIO(build_statistics_workbook(stats)),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
