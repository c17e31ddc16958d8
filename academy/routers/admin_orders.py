"""
Admin order back-office: review, approve, cancel, textbook shipping.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from academy.database import get_db
from academy.auth.dependencies import require_admin
from academy.models.order import OrderStatus
from academy.models.user import User
from academy.schemas.orders import (
    OrderResponse,
    ApprovalResponse,
    DeliveryUpdate,
    TrackingUpdate,
)
from academy.schemas.subscriptions import SubscriptionResponse
from academy.services import orders as order_service

router = APIRouter(prefix="/admin/orders", tags=["Admin Orders"])


@router.get("", response_model=List[OrderResponse])
def list_orders(
    status: Optional[str] = Query(None, description="Filter by status: PENDING_PAYMENT, PAID, CANCELLED"),
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
):
    """List orders; pending orders with a reported deposit come first."""
    status_enum = None
    if status:
        try:
            status_enum = OrderStatus(status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
    return order_service.list_orders(db, status_enum)


@router.post("/{order_id}/approve", response_model=ApprovalResponse)
def approve_order(
    order_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Confirm the transfer arrived: order becomes PAID and the course subscription READY."""
    order, subscription = order_service.approve_order(db, order_id, actor_id=admin.id)
    return ApprovalResponse(order=order, subscription=SubscriptionResponse.from_subscription(subscription))


@router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return order_service.cancel_order(db, order_id, actor_id=admin.id)


@router.patch("/{order_id}/delivery", response_model=OrderResponse)
def update_delivery(
    order_id: int,
    body: DeliveryUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return order_service.update_delivery_status(db, order_id, body.delivery_status, actor_id=admin.id)


@router.patch("/{order_id}/tracking", response_model=OrderResponse)
def update_tracking(
    order_id: int,
    body: TrackingUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return order_service.update_tracking(
        db, order_id, body.tracking_number, body.tracking_carrier, actor_id=admin.id
    )
