import uuid
from datetime import datetime
from typing import Dict, Iterable, Optional

import structlog
from fastapi import APIRouter, Depends, Response
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth.security import get_identity, require_roles
from ..db import get_db
from ..errors import BadRequest, NotFound
from ..models.models import Feedback, Municipality, SubscriptionStatus, User, UserRole, as_utc, iso
from ..schemas.municipalities import MunicipalityCreate, MunicipalityUpdate
from ..services.access import Identity, require_municipality_access
from ..services.pagination import paginate
from ..services.statistics import feedback_statistics


router = APIRouter(prefix="/municipalities", tags=["municipalities"])
log = structlog.get_logger(__name__)


def municipality_to_dict(m: Municipality, counts: Optional[dict] = None) -> dict:
    data = {
        "id": str(m.id),
        "name": m.name,
        "city": m.city,
        "state": m.state,
        "country": m.country,
        "contactEmail": m.contact_email,
        "contactPhone": m.contact_phone,
        "subscriptionStatus": m.subscription_status,
        "createdAt": iso(m.created_at),
        "updatedAt": iso(m.updated_at),
    }
    if counts is not None:
        data["_count"] = counts
    return data


def _counts(db: Session, ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, dict]:
    ids = list(ids)
    out = {i: {"users": 0, "feedback": 0} for i in ids}
    if not ids:
        return out
    for mid, n in (
        db.query(User.municipality_id, func.count(User.id))
        .filter(User.municipality_id.in_(ids))
        .group_by(User.municipality_id)
        .all()
    ):
        out[mid]["users"] = int(n)
    for mid, n in (
        db.query(Feedback.municipality_id, func.count(Feedback.id))
        .filter(Feedback.municipality_id.in_(ids))
        .group_by(Feedback.municipality_id)
        .all()
    ):
        out[mid]["feedback"] = int(n)
    return out


def load_municipality(db: Session, municipality_id: uuid.UUID) -> Municipality:
    m = db.query(Municipality).filter(Municipality.id == municipality_id).first()
    if not m:
        raise NotFound("Municipality not found")
    return m


@router.get("")
def list_municipalities(
    city: Optional[str] = None,
    subscriptionStatus: Optional[SubscriptionStatus] = None,
    page: int = 1,
    limit: Optional[int] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    q = db.query(Municipality)
    if not identity.is_admin:
        q = q.filter(Municipality.id == identity.municipality_id)
    if city:
        q = q.filter(func.lower(Municipality.city) == city.lower())
    if subscriptionStatus:
        q = q.filter(Municipality.subscription_status == subscriptionStatus.value)
    result = paginate(q.order_by(Municipality.name), page, limit, lambda m: m)
    counts = _counts(db, [m.id for m in result["data"]])
    result["data"] = [municipality_to_dict(m, counts[m.id]) for m in result["data"]]
    return result


@router.post("", status_code=201)
def create_municipality(
    payload: MunicipalityCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_roles(UserRole.ADMIN.value)),
):
    m = Municipality(**payload.model_dump())
    db.add(m)
    db.commit()
    db.refresh(m)
    log.info("municipality_created", municipality_id=str(m.id), by=str(identity.id))
    return municipality_to_dict(m, {"users": 0, "feedback": 0})


@router.get("/{municipality_id}")
def get_municipality(
    municipality_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    require_municipality_access(identity, path_id=municipality_id)
    m = load_municipality(db, municipality_id)
    return municipality_to_dict(m, _counts(db, [m.id])[m.id])


@router.patch("/{municipality_id}")
def update_municipality(
    municipality_id: uuid.UUID,
    payload: MunicipalityUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_roles(UserRole.ADMIN.value)),
):
    m = load_municipality(db, municipality_id)
    data = payload.model_dump(exclude_unset=True)
    for field, value in data.items():
        if value is None and field != "contact_phone":
            continue
        setattr(m, field, value)
    db.commit()
    db.refresh(m)
    log.info("municipality_updated", municipality_id=str(m.id), fields=sorted(data.keys()))
    return municipality_to_dict(m, _counts(db, [m.id])[m.id])


@router.delete("/{municipality_id}", status_code=204)
def delete_municipality(
    municipality_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_roles(UserRole.ADMIN.value)),
):
    m = load_municipality(db, municipality_id)
    # Users are detached by the FK; a MUNICIPALITY_ADMIN cannot exist without a municipality
    demoted = (
        db.query(User)
        .filter(User.municipality_id == m.id, User.role == UserRole.MUNICIPALITY_ADMIN.value)
        .update({User.role: UserRole.USER.value}, synchronize_session=False)
    )
    db.delete(m)
    db.commit()
    log.info("municipality_deleted", municipality_id=str(municipality_id), by=str(identity.id), demoted_admins=demoted)
    return Response(status_code=204)


def parse_date_range(start: Optional[datetime], end: Optional[datetime]):
    if start is not None and end is not None and as_utc(start) > as_utc(end):
        raise BadRequest("startDate must be before endDate")
    return start, end


@router.get("/{municipality_id}/statistics")
def municipality_statistics(
    municipality_id: uuid.UUID,
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    # Scope before existence
    require_municipality_access(identity, path_id=municipality_id)
    m = load_municipality(db, municipality_id)
    start, end = parse_date_range(startDate, endDate)
    stats = feedback_statistics(db, m.id, start, end)
    stats["municipality"] = {"id": str(m.id), "name": m.name, "city": m.city}
    return stats
