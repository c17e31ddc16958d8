"""
Admin event log viewer: order, subscription and progress transitions.
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from academy.database import get_db
from academy.models.event import Event, EventStatus
from academy.models.user import User
from academy.schemas.events import EventListResponse
from academy.auth.dependencies import require_admin

router = APIRouter(prefix="/admin/events", tags=["Admin Events"])


@router.get("", response_model=EventListResponse)
def list_events(
    status: Optional[str] = Query(None, description="Filter by status: processed, failed, ignored"),
    event_type: Optional[str] = Query(None, description="Filter by event type, e.g. order.approved"),
    target_id: Optional[int] = Query(None, description="Filter by target student ID"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
):
    """List events with optional filters. Default returns all events ordered by most recent."""
    query = db.query(Event)

    if status:
        try:
            status_enum = EventStatus(status)
            query = query.filter(Event.status == status_enum)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status: {status}")

    if event_type:
        query = query.filter(Event.type == event_type)

    if target_id:
        query = query.filter(Event.target_id == target_id)

    total = query.count()
    items = query.order_by(Event.created_at.desc()).offset(offset).limit(limit).all()

    return EventListResponse(items=items, total=total)
