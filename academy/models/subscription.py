"""
Per-(user, course) access grant.

All rows of one user form that user's subscription map. A user with no rows
has no map, which is what re-enables the legacy whole-account fallback.
"""
import enum
from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base


class SubscriptionStatus(str, enum.Enum):
    READY = "READY"      # approved, waiting for the student to start
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"  # persisted by the expiry sweep; reads derive it anyway


class CourseSubscription(Base):
    __tablename__ = "course_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)

    approved = Column(Boolean, nullable=False, default=False)
    status = Column(Enum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.READY)
    is_started = Column(Boolean, nullable=False, default=False)
    months = Column(Integer, nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)

    approved_at = Column(DateTime(timezone=True), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)  # NULL = unlimited
    expiry_warned_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", back_populates="course_subscriptions")
    course = relationship("Course")
    order = relationship("Order")

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_course_subscriptions_user_course"),
    )
