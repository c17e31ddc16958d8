# Database models
from .base import Base
from .user import User, UserRole
from .course import Course, Chapter
from .order import Order, OrderStatus, DeliveryStatus
from .subscription import CourseSubscription, SubscriptionStatus
from .progress import Progress
from .event import Event, EventStatus

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Course",
    "Chapter",
    "Order",
    "OrderStatus",
    "DeliveryStatus",
    "CourseSubscription",
    "SubscriptionStatus",
    "Progress",
    "Event",
    "EventStatus",
]
