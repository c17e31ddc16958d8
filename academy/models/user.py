from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from .base import Base


class UserRole(str, enum.Enum):
    """User role enumeration"""
    ADMIN = "admin"
    STUDENT = "student"


class User(Base):
    """Identity record supplied by the auth provider, plus subscription anchors"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.STUDENT)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Deprecated whole-account access, predates per-course subscriptions.
    # Only consulted while the user has no course_subscriptions rows at all.
    is_paid = Column(Boolean, nullable=False, default=False)
    subscription_start_date = Column(DateTime(timezone=True), nullable=True)
    subscription_end_date = Column(DateTime(timezone=True), nullable=True)
    subscription_months = Column(Integer, nullable=True)

    # Relationships
    course_subscriptions = relationship("CourseSubscription", back_populates="user", cascade="all, delete-orphan")
    orders = relationship("Order", back_populates="user")
