# -------- ADMIN NOTIFICATIONS --------
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from coursestore.database import get_session
from coursestore.dependencies.admin import require_admin
from coursestore.models.notifications import RecipientRole
from coursestore.models.user import User
from coursestore.services.notification_service import list_notifications
from coursestore.utils.pagination import paginate

router = APIRouter()


@router.get("")
def list_admin_notifications(
    trigger_source: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    query = list_notifications(
        session,
        recipient_role=RecipientRole.admin,
        trigger_source=trigger_source,
    )
    return paginate(session=session, query=query, page=page, limit=limit)
