"""
Semantic events emitted by the lifecycle engines.

Engines only record that something happened; delivering notifications
(payment approved, course started, expiring soon, ...) is done by whoever
reads the events table.
"""
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from academy.models.event import Event, EventStatus

ORDER_CREATED = "order.created"
ORDER_DEPOSIT_CONFIRMATION_REQUESTED = "order.deposit_confirmation_requested"
ORDER_APPROVED = "order.approved"
ORDER_CANCELLED = "order.cancelled"
ORDER_DELIVERY_UPDATED = "order.delivery_updated"
ORDER_TRACKING_UPDATED = "order.tracking_updated"
SUBSCRIPTION_STARTED = "subscription.started"
SUBSCRIPTION_EXTENDED = "subscription.extended"
SUBSCRIPTION_REVOKED = "subscription.revoked"
SUBSCRIPTION_EXPIRING_SOON = "subscription.expiring_soon"
SUBSCRIPTION_EXPIRED = "subscription.expired"
PROGRESS_COMPLETED = "progress.completed"


def log_event(
    db: Session,
    event_type: str,
    target_id: Optional[int],
    payload: Dict[str, Any],
    status: EventStatus = EventStatus.PROCESSED,
    error_message: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> Event:
    """Append an event inside the caller's transaction; it commits or rolls back with it."""
    event = Event(
        type=event_type,
        actor_id=actor_id,
        target_id=target_id,
        payload=payload,
        status=status,
        error_message=error_message,
    )
    db.add(event)
    db.flush()
    return event
