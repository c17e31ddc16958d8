import enum
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base


class OrderStatus(str, enum.Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class DeliveryStatus(str, enum.Enum):
    PREPARING = "PREPARING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"


class Order(Base):
    """Manual bank-transfer purchase of course access, optionally with a textbook"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    course_name = Column(String(255), nullable=False)
    months = Column(Integer, nullable=False)

    # amount = course_amount + (textbook_amount if has_textbook else 0)
    amount = Column(Integer, nullable=False)
    course_amount = Column(Integer, nullable=False)
    depositor_name = Column(String(255), nullable=False)

    has_textbook = Column(Boolean, nullable=False, default=False)
    textbook_amount = Column(Integer, nullable=True)
    shipping_address = Column(JSONB, nullable=True)

    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING_PAYMENT, index=True)
    deposit_confirmed = Column(Boolean, nullable=False, default=False)
    deposit_confirmed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Textbook shipping, only meaningful once PAID
    delivery_status = Column(Enum(DeliveryStatus), nullable=True)
    tracking_number = Column(String(100), nullable=True)
    tracking_carrier = Column(String(50), nullable=True)

    user = relationship("User", back_populates="orders")
    course = relationship("Course")
