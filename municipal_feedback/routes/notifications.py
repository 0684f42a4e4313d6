import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_identity
from ..db import get_db
from ..errors import Forbidden, NotFound
from ..models.models import Notification, PushSubscription, iso, utcnow
from ..schemas.notifications import PushSubscriptionIn
from ..services.access import Identity
from ..services.pagination import paginate


router = APIRouter(prefix="/notifications", tags=["notifications"])
log = structlog.get_logger(__name__)


def notification_to_dict(n: Notification) -> dict:
    return {
        "id": str(n.id),
        "userId": str(n.user_id),
        "title": n.title,
        "body": n.body,
        "data": n.data or {},
        "read": bool(n.read),
        "readAt": iso(n.read_at),
        "createdAt": iso(n.created_at),
    }


@router.get("")
def list_notifications(
    unreadOnly: bool = False,
    page: int = 1,
    limit: Optional[int] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    q = db.query(Notification).filter(Notification.user_id == identity.id)
    if unreadOnly:
        q = q.filter(Notification.read.is_(False))
    return paginate(q.order_by(Notification.created_at.desc()), page, limit, notification_to_dict)


@router.patch("/{notification_id}/read")
def mark_read(
    notification_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    n = db.query(Notification).filter(Notification.id == notification_id).first()
    if not n:
        raise NotFound("Notification not found")
    if n.user_id != identity.id:
        raise Forbidden("Access denied")
    if not n.read:
        n.read = True
        n.read_at = utcnow()
        db.commit()
        db.refresh(n)
    return notification_to_dict(n)


@router.post("/subscribe")
def subscribe(
    payload: PushSubscriptionIn,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    # One device registration per user; a new one replaces the old
    sub = db.query(PushSubscription).filter(PushSubscription.user_id == identity.id).first()
    if sub is None:
        sub = PushSubscription(user_id=identity.id)
        db.add(sub)
    sub.endpoint = str(payload.endpoint)
    sub.p256dh = payload.keys.p256dh
    sub.auth = payload.keys.auth
    db.commit()
    log.info("push_subscribed", user_id=str(identity.id))
    return {"message": "Successfully subscribed to notifications"}


@router.post("/unsubscribe")
def unsubscribe(db: Session = Depends(get_db), identity: Identity = Depends(get_identity)):
    db.query(PushSubscription).filter(PushSubscription.user_id == identity.id).delete(synchronize_session=False)
    db.commit()
    log.info("push_unsubscribed", user_id=str(identity.id))
    return {"message": "Successfully unsubscribed from notifications"}
