import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session, selectinload

from ..auth.security import get_identity
from ..db import get_db
from ..errors import Forbidden, NotFound, BadRequest
from ..models.models import (
    Feedback,
    FeedbackCategory,
    FeedbackComment,
    FeedbackStatus,
    Municipality,
    iso,
)
from ..schemas.feedback import CommentCreate, FeedbackCreate, FeedbackPatch, FeedbackUpdate, StatusUpdate
from ..services.access import (
    Decision,
    Identity,
    authorize,
    require_can_modify,
    require_municipality_access,
    require_staff,
    scope_feedback_query,
)
from ..services.lifecycle import apply_status
from ..services.notifications import notify_status_change
from ..services.pagination import paginate


router = APIRouter(prefix="/feedback", tags=["feedback"])
log = structlog.get_logger(__name__)


def _person(u) -> Optional[dict]:
    if u is None:
        return None
    return {"id": str(u.id), "name": u.name, "email": u.email, "role": u.role}


def comment_to_dict(c: FeedbackComment) -> dict:
    return {
        "id": str(c.id),
        "feedbackId": str(c.feedback_id),
        "userId": str(c.user_id),
        "text": c.text,
        "createdAt": iso(c.created_at),
        "user": _person(c.user),
    }


def feedback_to_dict(f: Feedback, with_comments: bool = True) -> dict:
    m = f.municipality
    data = {
        "id": str(f.id),
        "description": f.description,
        "category": f.category,
        "status": f.status,
        "location": {"latitude": f.latitude, "longitude": f.longitude},
        "address": f.address,
        "images": list(f.images or []),
        "userId": str(f.user_id),
        "municipalityId": str(f.municipality_id),
        "createdAt": iso(f.created_at),
        "updatedAt": iso(f.updated_at),
        "resolvedAt": iso(f.resolved_at),
        "user": _person(f.user),
        "municipality": {"id": str(m.id), "name": m.name, "city": m.city} if m else None,
    }
    if with_comments:
        data["comments"] = [comment_to_dict(c) for c in f.comments]
    return data


def _load(db: Session, feedback_id: uuid.UUID) -> Feedback:
    f = db.query(Feedback).filter(Feedback.id == feedback_id).first()
    if not f:
        raise NotFound("Feedback not found")
    return f


def _load_readable(db: Session, feedback_id: uuid.UUID, identity: Identity) -> Feedback:
    f = _load(db, feedback_id)
    if authorize(identity, f.municipality_id) is Decision.DENY:
        raise Forbidden("Insufficient permissions for this municipality")
    return f


def _apply_changes(db: Session, f: Feedback, data: dict, identity: Identity) -> Optional[str]:
    """Write validated fields onto ``f``. Returns the previous status when it changed."""
    category = data.pop("category", None)
    status = data.pop("status", None)
    if category is not None and FeedbackCategory(category).value != f.category:
        require_staff(identity)
    if status is not None and FeedbackStatus(status).value != f.status:
        require_staff(identity)

    location = data.pop("location", None)
    if location is not None:
        f.latitude = location["latitude"]
        f.longitude = location["longitude"]
    if data.get("description") is not None:
        f.description = data["description"]
    if "address" in data:
        f.address = data["address"]
    if data.get("images") is not None:
        f.images = list(data["images"])
    if category is not None:
        f.category = FeedbackCategory(category).value
    previous = apply_status(f, status) if status is not None else None
    if previous is not None:
        notify_status_change(db, f, previous, actor=identity)
    return previous


@router.get("")
def list_feedback(
    status: Optional[FeedbackStatus] = None,
    category: Optional[FeedbackCategory] = None,
    municipalityId: Optional[uuid.UUID] = None,
    page: int = 1,
    limit: Optional[int] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    q = scope_feedback_query(db.query(Feedback), identity)
    if status:
        q = q.filter(Feedback.status == status.value)
    if category:
        q = q.filter(Feedback.category == category.value)
    if municipalityId:
        q = q.filter(Feedback.municipality_id == municipalityId)
    q = q.options(
        selectinload(Feedback.user),
        selectinload(Feedback.municipality),
        selectinload(Feedback.comments).selectinload(FeedbackComment.user),
    ).order_by(Feedback.created_at.desc())
    return paginate(q, page, limit, feedback_to_dict)


@router.post("", status_code=201)
def create_feedback(payload: FeedbackCreate, db: Session = Depends(get_db), identity: Identity = Depends(get_identity)):
    municipality_id = require_municipality_access(identity, body_id=payload.municipality_id)
    if municipality_id is None:
        raise BadRequest("municipalityId is required")
    if db.query(Municipality.id).filter(Municipality.id == municipality_id).first() is None:
        raise NotFound("Municipality not found")
    f = Feedback(
        description=payload.description,
        category=payload.category.value,
        latitude=payload.location.latitude,
        longitude=payload.location.longitude,
        address=payload.address,
        images=list(payload.images),
        status=FeedbackStatus.PENDING.value,
        resolved_at=None,
        user_id=identity.id,
        municipality_id=municipality_id,
    )
    db.add(f)
    db.commit()
    db.refresh(f)
    log.info("feedback_created", feedback_id=str(f.id), municipality_id=str(municipality_id), category=f.category)
    return feedback_to_dict(f)


@router.get("/{feedback_id}")
def get_feedback(feedback_id: uuid.UUID, db: Session = Depends(get_db), identity: Identity = Depends(get_identity)):
    return feedback_to_dict(_load_readable(db, feedback_id, identity))


@router.put("/{feedback_id}")
def replace_feedback(
    feedback_id: uuid.UUID,
    payload: FeedbackUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    f = _load(db, feedback_id)
    require_can_modify(identity, f.municipality_id, f.user_id)
    data = payload.model_dump()
    if payload.status is None:
        data.pop("status")
    _apply_changes(db, f, data, identity)
    db.commit()
    db.refresh(f)
    log.info("feedback_updated", feedback_id=str(f.id), by=str(identity.id))
    return feedback_to_dict(f)


@router.patch("/{feedback_id}")
def update_feedback(
    feedback_id: uuid.UUID,
    payload: FeedbackPatch,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    f = _load(db, feedback_id)
    require_can_modify(identity, f.municipality_id, f.user_id)
    _apply_changes(db, f, payload.model_dump(exclude_unset=True), identity)
    db.commit()
    db.refresh(f)
    log.info("feedback_updated", feedback_id=str(f.id), by=str(identity.id))
    return feedback_to_dict(f)


@router.patch("/{feedback_id}/status")
def update_feedback_status(
    feedback_id: uuid.UUID,
    payload: StatusUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    f = _load(db, feedback_id)
    require_staff(identity)
    require_can_modify(identity, f.municipality_id, f.user_id)
    previous = apply_status(f, payload.status)
    if previous is not None:
        notify_status_change(db, f, previous, actor=identity)
        log.info("feedback_status_changed", feedback_id=str(f.id), previous=previous, status=f.status, by=str(identity.id))
    db.commit()
    db.refresh(f)
    return feedback_to_dict(f)


@router.delete("/{feedback_id}", status_code=204)
def delete_feedback(feedback_id: uuid.UUID, db: Session = Depends(get_db), identity: Identity = Depends(get_identity)):
    f = _load(db, feedback_id)
    require_can_modify(identity, f.municipality_id, f.user_id)
    db.delete(f)
    db.commit()
    log.info("feedback_deleted", feedback_id=str(feedback_id), by=str(identity.id))
    return Response(status_code=204)


@router.post("/{feedback_id}/comments", status_code=201)
def add_comment(
    feedback_id: uuid.UUID,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    f = _load_readable(db, feedback_id, identity)
    c = FeedbackComment(feedback_id=f.id, user_id=identity.id, text=payload.text)
    db.add(c)
    db.commit()
    db.refresh(c)
    return comment_to_dict(c)
