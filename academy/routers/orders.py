"""
Student order endpoints: bank details, purchase request, own orders, deposit confirmation.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from academy.config import settings
from academy.database import get_db
from academy.auth.dependencies import get_current_user
from academy.models.course import Course
from academy.models.user import User
from academy.schemas.orders import (
    OrderCreate,
    OrderResponse,
    DepositConfirmationResponse,
    BankInfoResponse,
)
from academy.services import orders as order_service

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/bank-info", response_model=BankInfoResponse)
def get_bank_info(current_user: User = Depends(get_current_user)):
    """Account the student transfers the order amount to"""
    return BankInfoResponse(
        bank_name=settings.bank_name,
        account_number=settings.bank_account_number,
        account_holder=settings.bank_account_holder,
    )


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    order_data: OrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Place a PENDING_PAYMENT order, priced from the course catalog"""
    course = db.query(Course).filter(
        Course.id == order_data.course_id,
        Course.is_active == True,  # noqa: E712
    ).first()
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")

    course_amount = course.price_for(order_data.months)
    if course_amount is None:
        raise HTTPException(
            status_code=422,
            detail=f"Course is not offered for {order_data.months} months",
        )

    textbook = None
    if order_data.has_textbook:
        if course.textbook_price is None:
            raise HTTPException(status_code=422, detail="Course has no textbook")
        textbook = order_service.TextbookOrder(
            amount=course.textbook_price,
            shipping_address=order_data.shipping_address.model_dump(by_alias=True, exclude_none=True),
        )

    return order_service.create_order(
        db,
        current_user,
        course,
        months=order_data.months,
        course_amount=course_amount,
        depositor_name=order_data.depositor_name,
        textbook=textbook,
    )


@router.get("/me", response_model=List[OrderResponse])
def list_my_orders(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return order_service.list_user_orders(db, current_user.id)


@router.post("/{order_id}/confirm-deposit", response_model=DepositConfirmationResponse)
def confirm_deposit(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Tell the admins the transfer was made. Repeating it reports already_requested."""
    order, already_requested = order_service.confirm_deposit(db, order_id, current_user.id)
    return DepositConfirmationResponse(order=order, already_requested=already_requested)
