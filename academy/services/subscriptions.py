"""
Course subscription lifecycle.

Stored:  READY (approved, not started) → ACTIVE (window fixed) → EXPIRED
Derived: resolve() computes NONE / PENDING / READY / ACTIVE / EXPIRED from the
stored fields and the current time. Access checks always go through resolve();
the stored EXPIRED written by the sweep is only a cache for listings.

Every write to a user's subscription map locks that user's row first and
re-reads the subscription inside the same transaction.
"""
import calendar
import enum
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from academy.config import settings
from academy.database import run_transaction
from academy.models.subscription import CourseSubscription, SubscriptionStatus
from academy.models.user import User
from academy.services import events
from academy.services.errors import InvalidState, NotFound, ValidationError

logger = logging.getLogger(__name__)

FREE_CHAPTER_ORDER = 1


class AccessStatus(str, enum.Enum):
    NONE = "NONE"
    PENDING = "PENDING"
    READY = "READY"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def add_months(dt: datetime, months: int) -> datetime:
    """
    Calendar-month addition keeping the day of month.
    A day past the end of the target month rolls into the next one
    (Jan 31 + 1 month = Mar 3, or Mar 2 in a leap year).
    """
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    days_in_month = calendar.monthrange(year, month)[1]
    if dt.day <= days_in_month:
        return dt.replace(year=year, month=month)
    overflow = dt.day - days_in_month
    return dt.replace(year=year, month=month, day=days_in_month) + timedelta(days=overflow)


def resolve(subscription: Optional[CourseSubscription], now: Optional[datetime] = None) -> AccessStatus:
    """Derived status of one course subscription."""
    if subscription is None:
        return AccessStatus.NONE
    if not subscription.approved:
        return AccessStatus.PENDING
    if not subscription.is_started:
        return AccessStatus.READY
    if subscription.end_date is None or subscription.end_date > _now(now):
        return AccessStatus.ACTIVE
    return AccessStatus.EXPIRED


def resolve_legacy(user: User, now: Optional[datetime] = None) -> AccessStatus:
    """
    Deprecated whole-account access (is_paid + subscription_end_date).
    Only meaningful for users without any per-course subscription.
    """
    if not user.is_paid:
        return AccessStatus.NONE
    if user.subscription_end_date is None or user.subscription_end_date > _now(now):
        return AccessStatus.ACTIVE
    return AccessStatus.EXPIRED


def get_subscription_map(db: Session, user_id: int) -> Dict[int, CourseSubscription]:
    """The user's subscriptions keyed by course id; empty means the map is absent."""
    rows = db.query(CourseSubscription).filter(CourseSubscription.user_id == user_id).all()
    return {row.course_id: row for row in rows}


def resolve_for_user(
    user: User,
    course_id: int,
    subscriptions: Dict[int, CourseSubscription],
    now: Optional[datetime] = None,
) -> AccessStatus:
    if not subscriptions:
        return resolve_legacy(user, now)
    subscription = subscriptions.get(course_id)
    if subscription is None:
        # The map exists, so the legacy flag no longer covers unlisted courses
        return AccessStatus.PENDING
    return resolve(subscription, now)


def has_access(
    user: User,
    course_id: int,
    chapter_order: int,
    subscriptions: Dict[int, CourseSubscription],
    now: Optional[datetime] = None,
) -> bool:
    """Content gate: the first chapter is free, everything else needs an ACTIVE subscription."""
    if chapter_order == FREE_CHAPTER_ORDER:
        return True
    return resolve_for_user(user, course_id, subscriptions, now) == AccessStatus.ACTIVE


def _lock_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).with_for_update().first()
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


def _get_subscription(db: Session, user_id: int, course_id: int) -> Optional[CourseSubscription]:
    return db.query(CourseSubscription).filter(
        CourseSubscription.user_id == user_id,
        CourseSubscription.course_id == course_id,
    ).first()


def start_course(
    db: Session,
    user_id: int,
    course_id: int,
    now: Optional[datetime] = None,
) -> CourseSubscription:
    """Student starts an approved course; fixes the window [now, now + months)."""
    now = _now(now)

    def _start(session: Session) -> CourseSubscription:
        _lock_user(session, user_id)
        subscription = _get_subscription(session, user_id, course_id)
        if subscription is None:
            raise NotFound(f"No subscription for course {course_id}")
        if not subscription.approved:
            raise InvalidState(f"Subscription for course {course_id} is not approved")
        if subscription.is_started or subscription.status == SubscriptionStatus.ACTIVE:
            logger.warning("Rejected start for user %s course %s: already started", user_id, course_id)
            raise InvalidState(f"Course {course_id} has already been started")

        subscription.start_date = now
        subscription.end_date = add_months(now, subscription.months or 1)
        subscription.status = SubscriptionStatus.ACTIVE
        subscription.is_started = True
        subscription.expiry_warned_at = None
        session.flush()

        events.log_event(
            session, events.SUBSCRIPTION_STARTED, user_id,
            {
                "course_id": course_id,
                "start_date": subscription.start_date.isoformat(),
                "end_date": subscription.end_date.isoformat(),
            },
            actor_id=user_id,
        )
        return subscription

    subscription = run_transaction(db, _start)
    logger.info("User %s started course %s, active until %s", user_id, course_id, subscription.end_date)
    return subscription


def extend_subscription(
    db: Session,
    user_id: int,
    course_id: int,
    months: int,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> CourseSubscription:
    """
    Admin grant or renewal, independent of orders.
    The new window starts where the current one ends, or now if that is already past.
    """
    if months is None or months <= 0:
        raise ValidationError("Extension must be a positive number of months")
    now = _now(now)

    def _extend(session: Session) -> CourseSubscription:
        _lock_user(session, user_id)
        subscription = _get_subscription(session, user_id, course_id)
        if subscription is None:
            subscription = CourseSubscription(user_id=user_id, course_id=course_id, approved_at=now)
            session.add(subscription)

        current_end = subscription.end_date
        new_start = current_end if current_end is not None and current_end > now else now
        new_end = add_months(new_start, months)

        if not subscription.is_started or subscription.start_date is None:
            subscription.start_date = new_start
        if subscription.approved_at is None:
            subscription.approved_at = now
        subscription.approved = True
        subscription.is_started = True
        subscription.status = SubscriptionStatus.ACTIVE
        subscription.months = months
        subscription.end_date = new_end
        subscription.expiry_warned_at = None
        session.flush()

        events.log_event(
            session, events.SUBSCRIPTION_EXTENDED, user_id,
            {
                "course_id": course_id,
                "months": months,
                "previous_end_date": current_end.isoformat() if current_end else None,
                "end_date": new_end.isoformat(),
            },
            actor_id=actor_id,
        )
        return subscription

    subscription = run_transaction(db, _extend)
    logger.info(
        "Subscription for user %s course %s extended by %s months to %s (by %s)",
        user_id, course_id, months, subscription.end_date, actor_id,
    )
    return subscription


def revoke_subscription(
    db: Session,
    user_id: int,
    course_id: int,
    actor_id: Optional[int] = None,
) -> None:
    """Remove the course entry entirely. Removing the last one leaves the user with no map."""

    def _revoke(session: Session) -> None:
        _lock_user(session, user_id)
        subscription = _get_subscription(session, user_id, course_id)
        if subscription is None:
            raise NotFound(f"No subscription for course {course_id}")
        order_id = subscription.order_id
        session.delete(subscription)
        session.flush()
        events.log_event(
            session, events.SUBSCRIPTION_REVOKED, user_id,
            {"course_id": course_id, "order_id": order_id},
            actor_id=actor_id,
        )

    run_transaction(db, _revoke)
    logger.info("Subscription for user %s course %s revoked by %s", user_id, course_id, actor_id)


def _expire_one(session: Session, subscription_id: int, now: datetime) -> bool:
    subscription = session.query(CourseSubscription).filter(
        CourseSubscription.id == subscription_id
    ).first()
    if subscription is None:
        return False
    _lock_user(session, subscription.user_id)
    session.refresh(subscription)
    if resolve(subscription, now) != AccessStatus.EXPIRED or subscription.status == SubscriptionStatus.EXPIRED:
        return False
    subscription.status = SubscriptionStatus.EXPIRED
    session.flush()
    events.log_event(
        session, events.SUBSCRIPTION_EXPIRED, subscription.user_id,
        {"course_id": subscription.course_id, "end_date": subscription.end_date.isoformat()},
    )
    return True


def _warn_one(session: Session, subscription_id: int, now: datetime, horizon: datetime) -> bool:
    subscription = session.query(CourseSubscription).filter(
        CourseSubscription.id == subscription_id
    ).first()
    if subscription is None:
        return False
    _lock_user(session, subscription.user_id)
    session.refresh(subscription)
    if (
        resolve(subscription, now) != AccessStatus.ACTIVE
        or subscription.end_date is None
        or subscription.end_date > horizon
        or subscription.expiry_warned_at is not None
    ):
        return False
    subscription.expiry_warned_at = now
    session.flush()
    days_remaining = math.ceil((subscription.end_date - now).total_seconds() / 86400)
    events.log_event(
        session, events.SUBSCRIPTION_EXPIRING_SOON, subscription.user_id,
        {
            "course_id": subscription.course_id,
            "end_date": subscription.end_date.isoformat(),
            "days_remaining": days_remaining,
        },
    )
    return True


def sweep_expiry(db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Persist EXPIRED on lapsed windows and flag windows ending within the warning period.
    Each row is handled in its own transaction so one conflict does not stall the sweep.
    """
    now = _now(now)
    horizon = now + timedelta(days=settings.expiry_warning_days)
    summary = {"expired": 0, "expiring_soon": 0, "errors": 0}

    active_ids: List[int] = [
        row.id for row in db.query(CourseSubscription.id).filter(
            CourseSubscription.status == SubscriptionStatus.ACTIVE,
            CourseSubscription.end_date.isnot(None),
            CourseSubscription.end_date <= horizon,
        ).all()
    ]

    for subscription_id in active_ids:
        try:
            if run_transaction(db, lambda s, sid=subscription_id: _expire_one(s, sid, now)):
                summary["expired"] += 1
            elif run_transaction(db, lambda s, sid=subscription_id: _warn_one(s, sid, now, horizon)):
                summary["expiring_soon"] += 1
        except Exception as e:
            logger.error("Expiry sweep failed for subscription %s: %s", subscription_id, e)
            summary["errors"] += 1

    logger.info("Expiry sweep finished: %s", summary)
    return summary
