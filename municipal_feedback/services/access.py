"""
Tenant-scoped access control.

A municipality is the unit of data isolation. ``authorize`` answers whether an
identity may touch data owned by a municipality; ``can_modify`` narrows that to
individual feedback/comment records; ``scope_feedback_query`` applies the same
rules to list queries.
"""
import enum
import uuid
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.orm import Query

from ..errors import BadRequest, Forbidden
from ..models.models import Feedback, UserRole


STAFF_ROLES = (UserRole.ADMIN.value, UserRole.MUNICIPALITY_ADMIN.value)


@dataclass(frozen=True)
class Identity:
    """Authenticated caller; only produced after token verification."""
    id: uuid.UUID
    role: str
    municipality_id: Optional[uuid.UUID] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


class Decision(str, enum.Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"


def _as_uuid(value: Union[str, uuid.UUID, None]) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise BadRequest("Invalid municipalityId")


def authorize(identity: Identity, target_municipality_id: Union[str, uuid.UUID, None]) -> Decision:
    if identity.role == UserRole.ADMIN.value:
        return Decision.ALLOW
    target = _as_uuid(target_municipality_id)
    if identity.municipality_id is None or target is None:
        return Decision.DENY
    if identity.role in (UserRole.MUNICIPALITY_ADMIN.value, UserRole.USER.value):
        if identity.municipality_id == target:
            return Decision.ALLOW
    return Decision.DENY


def resolve_target_municipality(
    identity: Identity,
    path_id: Union[str, uuid.UUID, None] = None,
    body_id: Union[str, uuid.UUID, None] = None,
) -> Optional[uuid.UUID]:
    """Path parameter wins over body field. Only admins may omit both."""
    target = path_id if path_id is not None else body_id
    if target is None:
        if identity.is_admin:
            return None
        raise BadRequest("MunicipalityRequired")
    return _as_uuid(target)


def require_municipality_access(
    identity: Identity,
    path_id: Union[str, uuid.UUID, None] = None,
    body_id: Union[str, uuid.UUID, None] = None,
) -> Optional[uuid.UUID]:
    target = resolve_target_municipality(identity, path_id, body_id)
    if authorize(identity, target) is Decision.DENY:
        raise Forbidden("Insufficient permissions for this municipality")
    return target


def can_modify(identity: Identity, municipality_id: uuid.UUID, author_id: uuid.UUID) -> bool:
    if authorize(identity, municipality_id) is Decision.DENY:
        return False
    if identity.is_staff:
        return True
    return identity.id == author_id


def require_can_modify(identity: Identity, municipality_id: uuid.UUID, author_id: uuid.UUID) -> None:
    if not can_modify(identity, municipality_id, author_id):
        raise Forbidden("Insufficient permissions for this record")


def require_staff(identity: Identity) -> None:
    if not identity.is_staff:
        raise Forbidden("Insufficient permissions")


def scope_feedback_query(query: Query, identity: Identity) -> Query:
    if identity.is_admin:
        return query
    if identity.role == UserRole.MUNICIPALITY_ADMIN.value:
        # A tenant-less municipality admin sees nothing
        return query.filter(Feedback.municipality_id == identity.municipality_id)
    return query.filter(
        Feedback.municipality_id == identity.municipality_id,
        Feedback.user_id == identity.id,
    )
