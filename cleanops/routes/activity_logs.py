from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models import ActivityLog, User

router = APIRouter(prefix="/activity-logs", tags=["Activity Logs"])


class ActivityLogResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    action_type: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ActivityLogPage(BaseModel):
    items: list[ActivityLogResponse]
    total: int
    page: int
    page_size: int


@router.get("", response_model=ActivityLogPage)
async def list_activity_logs(
    action_type: Optional[str] = Query(None),
    user_id: Optional[int] = Query(None),
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Audit trail, newest first"""
    query = db.query(ActivityLog)
    if action_type:
        query = query.filter(ActivityLog.action_type == action_type)
    if user_id:
        query = query.filter(ActivityLog.user_id == user_id)
    if entity_type:
        query = query.filter(ActivityLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(ActivityLog.entity_id == entity_id)
    if date_from:
        query = query.filter(ActivityLog.created_at >= date_from)
    if date_to:
        query = query.filter(ActivityLog.created_at <= date_to)

    total = query.count()
    items = (
        query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.get("/action-types")
async def list_action_types(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rows = db.query(ActivityLog.action_type).distinct().order_by(ActivityLog.action_type.asc()).all()
    return [row[0] for row in rows]
