import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field

from ..models.models import PaymentStatus, SubscriptionPlan, SubscriptionStatus
from .common import CamelModel


class SubscriptionCreate(CamelModel):
    municipality_id: uuid.UUID
    plan: SubscriptionPlan
    valid_until: datetime
    valid_from: Optional[datetime] = None
    status: SubscriptionStatus = SubscriptionStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: Optional[str] = Field(default=None, max_length=100)
    amount: float = Field(gt=0)


class SubscriptionUpdate(CamelModel):
    plan: Optional[SubscriptionPlan] = None
    valid_until: Optional[datetime] = None
    valid_from: Optional[datetime] = None
    status: Optional[SubscriptionStatus] = None
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[str] = Field(default=None, max_length=100)
    amount: Optional[float] = Field(default=None, gt=0)
