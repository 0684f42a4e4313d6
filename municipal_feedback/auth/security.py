import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
import bcrypt
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..errors import Forbidden, TokenExpired, TokenInvalid, Unauthenticated
from ..models.models import User
from ..services.access import Identity


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
http_bearer = HTTPBearer(auto_error=False)

ACCESS = "access"
REFRESH = "refresh"


def get_password_hash(password: str) -> str:
    # Use pbkdf2_sha256 to avoid native bcrypt backend issues
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    # Hashes seeded by the previous backend are bcrypt ($2a$/$2b$/$2y$); check those with bcrypt directly
    if hashed.startswith("$2a$") or hashed.startswith("$2b$") or hashed.startswith("$2y$"):
        pb = plain.encode("utf-8")
        if len(pb) > 72:
            pb = pb[:72]
        try:
            return bcrypt.checkpw(pb, hashed.encode("utf-8"))
        except ValueError:
            return False
    # Otherwise, verify using pbkdf2_sha256 (current scheme)
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        return False


def _create_token(sub: str, ttl_seconds: int, secret: str, extra: Optional[dict] = None) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: str, role: str) -> str:
    return _create_token(
        user_id, settings.access_token_ttl_seconds, settings.jwt_secret, extra={"role": role, "type": ACCESS}
    )


def create_refresh_token(user_id: str) -> str:
    return _create_token(
        user_id, settings.refresh_token_ttl_seconds, settings.jwt_refresh_secret, extra={"type": REFRESH}
    )


def decode_token(token: str, secret: Optional[str] = None) -> dict:
    try:
        return jwt.decode(token, secret or settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.InvalidTokenError:
        raise TokenInvalid()


def authenticate(db: Session, token: Optional[str]) -> Identity:
    """Verify an access token and confirm its subject still exists with the same role."""
    if not token:
        raise Unauthenticated("No token provided")
    payload = decode_token(token)
    if payload.get("type") != ACCESS:
        raise TokenInvalid()
    try:
        user_uuid = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise TokenInvalid("Invalid subject")
    user = db.query(User).filter(User.id == user_uuid).first()
    if user is None:
        raise Unauthenticated("User no longer exists")
    if user.role != payload.get("role"):
        # Role changed since issuance; force a new login
        raise Unauthenticated("Role changed, please sign in again")
    return Identity(id=user.id, role=user.role, municipality_id=user.municipality_id)


def get_identity(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
) -> Identity:
    # HTTPBearer yields None for a missing header or a non-Bearer scheme
    return authenticate(db, creds.credentials if creds else None)


def get_current_user(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)) -> User:
    user = db.query(User).filter(User.id == identity.id).first()
    if user is None:
        raise Unauthenticated("User not found")
    return user


def require_roles(*allowed_roles: str):
    def _dep(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role not in allowed_roles:
            raise Forbidden("Insufficient permissions")
        return identity

    return _dep
