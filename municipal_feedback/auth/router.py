import structlog
from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import Unauthenticated
from ..models.models import User
from ..routes.users import user_to_dict
from ..schemas.auth import LoginRequest, LogoutRequest, RefreshRequest
from .security import get_current_user, verify_password
from .tokens import issue_tokens, refresh_access_token, revoke_refresh_token


router = APIRouter(prefix="/auth", tags=["auth"])
log = structlog.get_logger(__name__)


@router.post("/login")
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(func.lower(User.email) == req.email.lower()).first()
    if not user or not verify_password(req.password, user.password_hash):
        # Same message for unknown email and wrong password
        log.info("login_failed", email=req.email)
        raise Unauthenticated("Invalid credentials")
    access, refresh = issue_tokens(db, user)
    log.info("login_succeeded", user_id=str(user.id), role=user.role)
    return {"accessToken": access, "refreshToken": refresh, "user": user_to_dict(user)}


@router.post("/refresh-token")
def refresh(req: RefreshRequest, db: Session = Depends(get_db)):
    return {"accessToken": refresh_access_token(db, req.refresh_token)}


@router.post("/logout")
def logout(req: LogoutRequest, db: Session = Depends(get_db)):
    revoke_refresh_token(db, req.refresh_token)
    return {"message": "Logged out successfully"}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return user_to_dict(user)
