import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Response
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth.security import get_identity, get_password_hash, require_roles
from ..db import get_db
from ..errors import BadRequest, Conflict, Forbidden, NotFound
from ..models.models import Municipality, User, UserRole, iso
from ..schemas.users import UserCreate, UserUpdate
from ..services.access import Identity
from ..services.pagination import paginate


router = APIRouter(prefix="/users", tags=["users"])
log = structlog.get_logger(__name__)


def user_to_dict(u: User) -> dict:
    m = u.municipality
    return {
        "id": str(u.id),
        "email": u.email,
        "name": u.name,
        "role": u.role,
        "municipalityId": str(u.municipality_id) if u.municipality_id else None,
        "municipality": {"id": str(m.id), "name": m.name, "city": m.city} if m else None,
        "language": u.language,
        "phone": u.phone,
        "createdAt": iso(u.created_at),
        "updatedAt": iso(u.updated_at),
    }


def _check_user_scope(identity: Identity, target: Optional[User]) -> None:
    """USER: self only. MUNICIPALITY_ADMIN: non-admin users of their own municipality."""
    if identity.is_admin:
        if target is None:
            raise NotFound("User not found")
        return
    if target is not None and target.id == identity.id:
        return
    if identity.role == UserRole.MUNICIPALITY_ADMIN.value and target is not None:
        if (
            identity.municipality_id is not None
            and target.municipality_id == identity.municipality_id
            and target.role != UserRole.ADMIN.value
        ):
            return
    # Same response whether or not the user exists
    raise Forbidden("Forbidden")


def _ensure_municipality(db: Session, municipality_id: Optional[uuid.UUID]) -> None:
    if municipality_id is None:
        return
    if db.query(Municipality.id).filter(Municipality.id == municipality_id).first() is None:
        raise NotFound("Municipality not found")


@router.get("")
def list_users(
    role: Optional[UserRole] = None,
    municipalityId: Optional[uuid.UUID] = None,
    page: int = 1,
    limit: Optional[int] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_roles(UserRole.ADMIN.value, UserRole.MUNICIPALITY_ADMIN.value)),
):
    q = db.query(User)
    if role:
        q = q.filter(User.role == role.value)
    if municipalityId:
        q = q.filter(User.municipality_id == municipalityId)
    # Municipality admins can only see users from their municipality
    if not identity.is_admin:
        q = q.filter(User.municipality_id == identity.municipality_id)
    return paginate(q.order_by(User.created_at.desc()), page, limit, user_to_dict)


@router.post("", status_code=201)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_roles(UserRole.ADMIN.value)),
):
    email = payload.email.lower()
    if db.query(User.id).filter(func.lower(User.email) == email).first():
        raise Conflict("Email already registered")
    _ensure_municipality(db, payload.municipality_id)
    u = User(
        email=email,
        password_hash=get_password_hash(payload.password),
        name=payload.name,
        role=payload.role.value,
        municipality_id=payload.municipality_id,
        phone=payload.phone,
        language=payload.language,
    )
    db.add(u)
    db.commit()
    db.refresh(u)
    log.info("user_created", user_id=str(u.id), role=u.role, by=str(identity.id))
    return user_to_dict(u)


@router.get("/{user_id}")
def get_user(user_id: uuid.UUID, db: Session = Depends(get_db), identity: Identity = Depends(get_identity)):
    u = db.query(User).filter(User.id == user_id).first()
    _check_user_scope(identity, u)
    return user_to_dict(u)


@router.patch("/{user_id}")
def update_user(
    user_id: uuid.UUID,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    u = db.query(User).filter(User.id == user_id).first()
    _check_user_scope(identity, u)

    data = payload.model_dump(exclude_unset=True)
    # Only system admins may move users between roles or municipalities
    if not identity.is_admin:
        data.pop("role", None)
        data.pop("municipality_id", None)

    if data.get("email"):
        # Stored lowercase; login matches case-insensitively
        data["email"] = data["email"].lower()
        if db.query(User.id).filter(func.lower(User.email) == data["email"], User.id != u.id).first():
            raise Conflict("Email already registered")
    if "municipality_id" in data:
        _ensure_municipality(db, data["municipality_id"])

    password = data.pop("password", None)
    if password:
        u.password_hash = get_password_hash(password)
    if "role" in data and data["role"] is not None:
        data["role"] = data["role"].value
    for field, value in data.items():
        if value is None and field in ("email", "name", "role", "language"):
            continue
        setattr(u, field, value)

    if u.role == UserRole.MUNICIPALITY_ADMIN.value and u.municipality_id is None:
        raise BadRequest("municipalityId is required for MUNICIPALITY_ADMIN users")

    db.commit()
    db.refresh(u)
    log.info("user_updated", user_id=str(u.id), by=str(identity.id), fields=sorted(data.keys()))
    return user_to_dict(u)


@router.delete("/{user_id}", status_code=204)
def delete_user(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_roles(UserRole.ADMIN.value)),
):
    u = db.query(User).filter(User.id == user_id).first()
    if not u:
        raise NotFound("User not found")
    db.delete(u)
    db.commit()
    log.info("user_deleted", user_id=str(user_id), by=str(identity.id))
    return Response(status_code=204)
