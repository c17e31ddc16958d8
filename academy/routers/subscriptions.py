"""
Student subscription endpoints: own subscription map and "start course".
"""
from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from academy.database import get_db
from academy.auth.dependencies import get_current_user
from academy.models.user import User
from academy.schemas.subscriptions import (
    SubscriptionResponse,
    SubscriptionMapResponse,
    LegacyAccessResponse,
)
from academy.services import subscriptions as subscription_service

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def build_subscription_map(db: Session, user: User) -> SubscriptionMapResponse:
    """Per-course entries with derived status, or the legacy account flag when there is no map."""
    now = datetime.now(timezone.utc)
    subscriptions = subscription_service.get_subscription_map(db, user.id)
    if not subscriptions:
        return SubscriptionMapResponse(
            user_id=user.id,
            course_subscriptions=None,
            legacy=LegacyAccessResponse(
                is_paid=bool(user.is_paid),
                subscription_end_date=user.subscription_end_date,
                access_status=subscription_service.resolve_legacy(user, now),
            ),
        )
    return SubscriptionMapResponse(
        user_id=user.id,
        course_subscriptions=[
            SubscriptionResponse.from_subscription(sub, now)
            for _, sub in sorted(subscriptions.items())
        ],
    )


@router.get("/me", response_model=SubscriptionMapResponse)
def my_subscriptions(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return build_subscription_map(db, current_user)


@router.post("/{course_id}/start", response_model=SubscriptionResponse)
def start_course(
    course_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Begin an approved course now; the access window runs for the purchased months."""
    subscription = subscription_service.start_course(db, current_user.id, course_id)
    return SubscriptionResponse.from_subscription(subscription)
