"""
Admin management of a student's course subscriptions, independent of orders.
"""
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from academy.database import get_db
from academy.auth.dependencies import require_admin
from academy.models.user import User
from academy.routers.subscriptions import build_subscription_map
from academy.schemas.subscriptions import (
    ExtendRequest,
    SubscriptionResponse,
    SubscriptionMapResponse,
)
from academy.services import subscriptions as subscription_service

router = APIRouter(prefix="/admin/students", tags=["Admin Students"])


@router.get("/{user_id}/subscriptions", response_model=SubscriptionMapResponse)
def get_student_subscriptions(
    user_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
):
    student = db.query(User).filter(User.id == user_id).first()
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return build_subscription_map(db, student)


@router.post("/{user_id}/subscriptions/{course_id}/extend", response_model=SubscriptionResponse)
def extend_subscription(
    user_id: int,
    course_id: int,
    body: ExtendRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Grant or renew access for `months`, counted from the current end date if still in the future."""
    subscription = subscription_service.extend_subscription(
        db, user_id, course_id, body.months, actor_id=admin.id
    )
    return SubscriptionResponse.from_subscription(subscription)


@router.delete("/{user_id}/subscriptions/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_subscription(
    user_id: int,
    course_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    subscription_service.revoke_subscription(db, user_id, course_id, actor_id=admin.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
