"""
Order lifecycle for manual bank-transfer purchases.

States: PENDING_PAYMENT → PAID
        PENDING_PAYMENT → CANCELLED
PAID and CANCELLED are terminal; a PAID textbook order still moves through
its delivery states (PREPARING → SHIPPED → DELIVERED).

Approval is the one transition with a side-effect on another record: it writes
the student's course subscription in the same transaction as the order, so a
crash can never leave a paid order without access or access without payment.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case
from sqlalchemy.orm import Session

from academy.database import run_transaction
from academy.models.course import Course
from academy.models.order import Order, OrderStatus, DeliveryStatus
from academy.models.subscription import CourseSubscription, SubscriptionStatus
from academy.models.user import User
from academy.services import events
from academy.services.errors import InvalidState, NotFound, ValidationError

logger = logging.getLogger(__name__)

REQUIRED_ADDRESS_FIELDS = ("recipientName", "phone", "province", "district", "ward", "streetAddress")

DELIVERY_SEQUENCE = [DeliveryStatus.PREPARING, DeliveryStatus.SHIPPED, DeliveryStatus.DELIVERED]


@dataclass(frozen=True)
class TextbookOrder:
    """The textbook branch of an order. Its absence means course access only."""
    amount: int
    shipping_address: Dict[str, Any]


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _validate_shipping_address(address: Optional[Dict[str, Any]]) -> None:
    if not address:
        raise ValidationError("Shipping address is required when ordering a textbook")
    missing = [f for f in REQUIRED_ADDRESS_FIELDS if not str(address.get(f) or "").strip()]
    if missing:
        raise ValidationError(f"Shipping address is incomplete: missing {', '.join(missing)}")


def _get_locked_order(db: Session, order_id: int, user_id: Optional[int] = None) -> Order:
    """Read the order under a row lock, optionally scoped to its owner."""
    query = db.query(Order).filter(Order.id == order_id)
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    order = query.with_for_update().first()
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


def _require_pending(order: Order, action: str) -> None:
    if order.status != OrderStatus.PENDING_PAYMENT:
        logger.warning("Rejected %s for order %s in status %s", action, order.id, order.status)
        raise InvalidState(f"Cannot {action} order {order.id}: status is {order.status.value}")


def _require_paid_textbook(order: Order, action: str) -> None:
    if order.status != OrderStatus.PAID or not order.has_textbook:
        logger.warning(
            "Rejected %s for order %s (status=%s, has_textbook=%s)",
            action, order.id, order.status, order.has_textbook,
        )
        raise InvalidState(f"Cannot {action} order {order.id}: only paid textbook orders ship")


def create_order(
    db: Session,
    user: User,
    course: Course,
    months: int,
    course_amount: int,
    depositor_name: str,
    textbook: Optional[TextbookOrder] = None,
) -> Order:
    """Create a PENDING_PAYMENT order. Input is validated before anything is written."""
    depositor_name = (depositor_name or "").strip()
    if not depositor_name:
        raise ValidationError("Depositor name is required")
    if months is None or months <= 0:
        raise ValidationError("Subscription length must be a positive number of months")
    if course_amount is None or course_amount < 0:
        raise ValidationError("Course amount must not be negative")
    if textbook is not None:
        if textbook.amount is None or textbook.amount < 0:
            raise ValidationError("Textbook amount must not be negative")
        _validate_shipping_address(textbook.shipping_address)

    order = Order(
        user_id=user.id,
        course_id=course.id,
        course_name=course.title,
        months=months,
        course_amount=course_amount,
        amount=course_amount + (textbook.amount if textbook else 0),
        depositor_name=depositor_name,
        has_textbook=textbook is not None,
        textbook_amount=textbook.amount if textbook else None,
        shipping_address=dict(textbook.shipping_address) if textbook else None,
        status=OrderStatus.PENDING_PAYMENT,
        deposit_confirmed=False,
    )

    def _create(session: Session) -> Order:
        session.add(order)
        session.flush()
        events.log_event(
            session, events.ORDER_CREATED, user.id,
            {"order_id": order.id, "course_id": course.id, "months": months, "amount": order.amount},
            actor_id=user.id,
        )
        return order

    created = run_transaction(db, _create)
    logger.info("Order %s created for user %s (course %s, %s months)", created.id, user.id, course.id, months)
    return created


def confirm_deposit(
    db: Session,
    order_id: int,
    user_id: int,
    now: Optional[datetime] = None,
) -> Tuple[Order, bool]:
    """
    Student reports the bank transfer as done.
    Returns (order, already_requested); a repeat request changes nothing.
    """
    now = _now(now)

    def _confirm(session: Session) -> Tuple[Order, bool]:
        order = _get_locked_order(session, order_id, user_id=user_id)
        _require_pending(order, "confirm deposit for")
        if order.deposit_confirmed:
            return order, True

        order.deposit_confirmed = True
        order.deposit_confirmed_at = now
        session.flush()
        events.log_event(
            session, events.ORDER_DEPOSIT_CONFIRMATION_REQUESTED, order.user_id,
            {
                "order_id": order.id,
                "course_id": order.course_id,
                "course_name": order.course_name,
                "depositor_name": order.depositor_name,
                "amount": order.amount,
            },
            actor_id=user_id,
        )
        return order, False

    order, already_requested = run_transaction(db, _confirm)
    if already_requested:
        logger.info("Deposit confirmation for order %s was already requested", order_id)
    else:
        logger.info("Deposit confirmation requested for order %s", order_id)
    return order, already_requested


def approve_order(
    db: Session,
    order_id: int,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Tuple[Order, CourseSubscription]:
    """
    Mark the order PAID and provision a READY subscription, atomically.

    Any existing subscription for the course is replaced, not extended:
    remaining time on an unexpired window is discarded.
    """
    now = _now(now)

    def _approve(session: Session) -> Tuple[Order, CourseSubscription]:
        order = _get_locked_order(session, order_id)
        _require_pending(order, "approve")

        # Lock order: order row first, then the owner's user row
        user = session.query(User).filter(User.id == order.user_id).with_for_update().first()
        if user is None:
            raise NotFound(f"User {order.user_id} not found")

        order.status = OrderStatus.PAID
        order.paid_at = now
        if order.has_textbook and order.delivery_status is None:
            order.delivery_status = DeliveryStatus.PREPARING

        subscription = session.query(CourseSubscription).filter(
            CourseSubscription.user_id == user.id,
            CourseSubscription.course_id == order.course_id,
        ).first()
        replaced_status = subscription.status.value if subscription is not None else None
        if subscription is None:
            subscription = CourseSubscription(user_id=user.id, course_id=order.course_id)
            session.add(subscription)

        subscription.approved = True
        subscription.status = SubscriptionStatus.READY
        subscription.is_started = False
        subscription.months = order.months
        subscription.order_id = order.id
        subscription.approved_at = now
        subscription.start_date = None
        subscription.end_date = None
        subscription.expiry_warned_at = None
        session.flush()

        events.log_event(
            session, events.ORDER_APPROVED, user.id,
            {
                "order_id": order.id,
                "course_id": order.course_id,
                "course_name": order.course_name,
                "months": order.months,
                "amount": order.amount,
                "replaced_status": replaced_status,
            },
            actor_id=actor_id,
        )
        return order, subscription

    order, subscription = run_transaction(db, _approve)
    logger.info(
        "Order %s approved by %s; subscription for user %s course %s is READY",
        order.id, actor_id, order.user_id, order.course_id,
    )
    return order, subscription


def cancel_order(
    db: Session,
    order_id: int,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Order:
    now = _now(now)

    def _cancel(session: Session) -> Order:
        order = _get_locked_order(session, order_id)
        _require_pending(order, "cancel")
        order.status = OrderStatus.CANCELLED
        order.cancelled_at = now
        session.flush()
        events.log_event(
            session, events.ORDER_CANCELLED, order.user_id,
            {"order_id": order.id, "course_id": order.course_id},
            actor_id=actor_id,
        )
        return order

    order = run_transaction(db, _cancel)
    logger.info("Order %s cancelled by %s", order.id, actor_id)
    return order


def update_delivery_status(
    db: Session,
    order_id: int,
    delivery_status: DeliveryStatus,
    actor_id: Optional[int] = None,
) -> Order:
    """Advance textbook delivery. Moving backwards is rejected; repeating the current state is a no-op."""

    def _update(session: Session) -> Order:
        order = _get_locked_order(session, order_id)
        _require_paid_textbook(order, "update delivery for")

        current = order.delivery_status
        if current == delivery_status:
            return order
        if current is not None and DELIVERY_SEQUENCE.index(delivery_status) < DELIVERY_SEQUENCE.index(current):
            raise InvalidState(
                f"Cannot move order {order.id} delivery from {current.value} back to {delivery_status.value}"
            )

        order.delivery_status = delivery_status
        session.flush()
        events.log_event(
            session, events.ORDER_DELIVERY_UPDATED, order.user_id,
            {
                "order_id": order.id,
                "from_status": current.value if current else None,
                "to_status": delivery_status.value,
            },
            actor_id=actor_id,
        )
        return order

    return run_transaction(db, _update)


def update_tracking(
    db: Session,
    order_id: int,
    tracking_number: str,
    carrier: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> Order:
    tracking_number = (tracking_number or "").strip()
    if not tracking_number:
        raise ValidationError("Tracking number is required")

    def _update(session: Session) -> Order:
        order = _get_locked_order(session, order_id)
        _require_paid_textbook(order, "set tracking for")
        order.tracking_number = tracking_number
        order.tracking_carrier = carrier
        session.flush()
        events.log_event(
            session, events.ORDER_TRACKING_UPDATED, order.user_id,
            {"order_id": order.id, "tracking_number": tracking_number, "carrier": carrier},
            actor_id=actor_id,
        )
        return order

    return run_transaction(db, _update)


def list_orders(db: Session, status: Optional[OrderStatus] = None) -> List[Order]:
    """Admin listing: pending orders whose deposit was reported come first, then newest first."""
    query = db.query(Order)
    if status:
        query = query.filter(Order.status == status)
    deposit_reported_first = case(
        ((Order.status == OrderStatus.PENDING_PAYMENT) & (Order.deposit_confirmed == True), 0),  # noqa: E712
        else_=1,
    )
    return query.order_by(deposit_reported_first, Order.created_at.desc()).all()


def list_user_orders(db: Session, user_id: int) -> List[Order]:
    return db.query(Order).filter(Order.user_id == user_id).order_by(Order.created_at.desc()).all()
