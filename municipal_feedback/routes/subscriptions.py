import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_roles
from ..db import get_db
from ..errors import NotFound
from ..models.models import Municipality, Subscription, SubscriptionStatus, UserRole, iso
from ..schemas.subscriptions import SubscriptionCreate, SubscriptionUpdate
from ..services.access import Identity
from ..services.pagination import paginate


router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])
log = structlog.get_logger(__name__)

admin_only = require_roles(UserRole.ADMIN.value)


def subscription_to_dict(s: Subscription) -> dict:
    m = s.municipality
    return {
        "id": str(s.id),
        "municipalityId": str(s.municipality_id),
        "plan": s.plan,
        "status": s.status,
        "paymentStatus": s.payment_status,
        "paymentMethod": s.payment_method,
        "amount": float(s.amount) if s.amount is not None else None,
        "validFrom": iso(s.valid_from),
        "validUntil": iso(s.valid_until),
        "createdAt": iso(s.created_at),
        "updatedAt": iso(s.updated_at),
        "municipality": {"name": m.name, "city": m.city} if m else None,
    }


def _load(db: Session, subscription_id: uuid.UUID) -> Subscription:
    s = db.query(Subscription).filter(Subscription.id == subscription_id).first()
    if not s:
        raise NotFound("Subscription not found")
    return s


@router.get("")
def list_subscriptions(
    status: Optional[SubscriptionStatus] = None,
    municipalityId: Optional[uuid.UUID] = None,
    page: int = 1,
    limit: Optional[int] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(admin_only),
):
    q = db.query(Subscription)
    if status:
        q = q.filter(Subscription.status == status.value)
    if municipalityId:
        q = q.filter(Subscription.municipality_id == municipalityId)
    return paginate(q.order_by(Subscription.created_at.desc()), page, limit, subscription_to_dict)


@router.post("", status_code=201)
def create_subscription(
    payload: SubscriptionCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(admin_only),
):
    if db.query(Municipality.id).filter(Municipality.id == payload.municipality_id).first() is None:
        raise NotFound("Municipality not found")
    data = payload.model_dump(exclude_none=True)
    for field in ("plan", "status", "payment_status"):
        data[field] = data[field].value
    s = Subscription(**data)
    db.add(s)
    db.commit()
    db.refresh(s)
    # The municipality's subscriptionStatus now reads from this row
    log.info("subscription_created", subscription_id=str(s.id), municipality_id=str(s.municipality_id), status=s.status)
    return subscription_to_dict(s)


@router.get("/{subscription_id}")
def get_subscription(
    subscription_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity: Identity = Depends(admin_only),
):
    return subscription_to_dict(_load(db, subscription_id))


@router.patch("/{subscription_id}")
def update_subscription(
    subscription_id: uuid.UUID,
    payload: SubscriptionUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(admin_only),
):
    s = _load(db, subscription_id)
    data = payload.model_dump(exclude_unset=True)
    for field, value in data.items():
        if value is None and field != "payment_method":
            continue
        if field in ("plan", "status", "payment_status"):
            value = value.value
        setattr(s, field, value)
    db.commit()
    db.refresh(s)
    log.info("subscription_updated", subscription_id=str(s.id), fields=sorted(data.keys()))
    return subscription_to_dict(s)
