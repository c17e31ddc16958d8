from pydantic import Field
from datetime import datetime
from typing import Optional, List

from academy.models.subscription import SubscriptionStatus
from academy.services.subscriptions import AccessStatus, resolve
from academy.schemas.common import CamelModel


class SubscriptionResponse(CamelModel):
    """One entry of a user's course subscription map, with its derived access status"""
    course_id: int
    approved: bool
    status: SubscriptionStatus
    is_started: bool
    months: Optional[int] = None
    order_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    access_status: Optional[AccessStatus] = None

    @classmethod
    def from_subscription(cls, subscription, now: Optional[datetime] = None) -> "SubscriptionResponse":
        out = cls.model_validate(subscription)
        out.access_status = resolve(subscription, now)
        return out


class LegacyAccessResponse(CamelModel):
    is_paid: bool
    subscription_end_date: Optional[datetime] = None
    access_status: AccessStatus


class SubscriptionMapResponse(CamelModel):
    user_id: int
    course_subscriptions: Optional[List[SubscriptionResponse]] = None  # None: no map
    legacy: Optional[LegacyAccessResponse] = None  # only when there is no map


class ExtendRequest(CamelModel):
    months: int = Field(..., gt=0, le=120)


class ChapterAccessResponse(CamelModel):
    chapter_id: int
    course_id: int
    chapter_order: int
    has_access: bool
    status: AccessStatus
