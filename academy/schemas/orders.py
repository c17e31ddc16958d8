from pydantic import Field, field_validator, model_validator
from datetime import datetime
from typing import Optional, Dict, Any

from academy.models.order import OrderStatus, DeliveryStatus
from academy.schemas.common import CamelModel
from academy.schemas.subscriptions import SubscriptionResponse


class ShippingAddress(CamelModel):
    """Textbook delivery address (Vietnamese address layout)"""
    recipient_name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=1, max_length=30)
    province: str = Field(..., min_length=1)
    district: str = Field(..., min_length=1)
    ward: str = Field(..., min_length=1)
    street_address: str = Field(..., min_length=1)
    note: Optional[str] = None


class OrderCreate(CamelModel):
    """Schema for a student's bank-transfer purchase request"""
    course_id: int
    months: int = Field(..., gt=0)
    depositor_name: str = Field(..., min_length=1, max_length=255)
    has_textbook: bool = False
    shipping_address: Optional[ShippingAddress] = None

    @field_validator('depositor_name')
    @classmethod
    def depositor_name_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Depositor name is required')
        return v.strip()

    @model_validator(mode='after')
    def shipping_address_for_textbook(self):
        if self.has_textbook and self.shipping_address is None:
            raise ValueError('Shipping address is required when ordering a textbook')
        return self


class OrderResponse(CamelModel):
    id: int
    user_id: int
    course_id: int
    course_name: str
    months: int
    amount: int
    course_amount: int
    depositor_name: str
    status: OrderStatus
    has_textbook: bool
    textbook_amount: Optional[int] = None
    shipping_address: Optional[Dict[str, Any]] = None
    deposit_confirmed: bool = False
    deposit_confirmed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    delivery_status: Optional[DeliveryStatus] = None
    tracking_number: Optional[str] = None
    tracking_carrier: Optional[str] = None


class DepositConfirmationResponse(CamelModel):
    order: OrderResponse
    already_requested: bool


class ApprovalResponse(CamelModel):
    order: OrderResponse
    subscription: SubscriptionResponse


class BankInfoResponse(CamelModel):
    bank_name: str
    account_number: str
    account_holder: str


class DeliveryUpdate(CamelModel):
    delivery_status: DeliveryStatus


class TrackingUpdate(CamelModel):
    tracking_number: str = Field(..., min_length=1, max_length=100)
    tracking_carrier: Optional[str] = Field(None, max_length=50)
