"""Refresh-token persistence: issuing token pairs, minting access tokens, revocation."""
from datetime import datetime, timedelta, timezone
from typing import Tuple

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import TokenInvalid
from ..models.models import RefreshToken, User, as_utc
from .security import create_access_token, create_refresh_token


log = structlog.get_logger(__name__)


def issue_tokens(db: Session, user: User) -> Tuple[str, str]:
    now = datetime.now(timezone.utc)
    # Drop this user's stale rows while we are here
    db.query(RefreshToken).filter(
        RefreshToken.user_id == user.id, RefreshToken.expires_at < now
    ).delete(synchronize_session=False)
    access = create_access_token(str(user.id), role=user.role)
    refresh = create_refresh_token(str(user.id))
    db.add(
        RefreshToken(
            token=refresh,
            user_id=user.id,
            expires_at=now + timedelta(seconds=settings.refresh_token_ttl_seconds),
        )
    )
    db.commit()
    return access, refresh


def refresh_access_token(db: Session, token: str) -> str:
    """Mint a new access token from a stored refresh token. The refresh token is not rotated."""
    stored = db.query(RefreshToken).filter(RefreshToken.token == token).first()
    if stored is None:
        raise TokenInvalid("Invalid or expired refresh token")
    if as_utc(stored.expires_at) < datetime.now(timezone.utc):
        db.delete(stored)
        db.commit()
        raise TokenInvalid("Invalid or expired refresh token")
    user = stored.user
    return create_access_token(str(user.id), role=user.role)


def revoke_refresh_token(db: Session, token: str) -> bool:
    """Delete a stored refresh token. Returns False when it was already gone."""
    deleted = db.query(RefreshToken).filter(RefreshToken.token == token).delete(synchronize_session=False)
    db.commit()
    if not deleted:
        log.info("refresh_token_already_revoked")
    return bool(deleted)

