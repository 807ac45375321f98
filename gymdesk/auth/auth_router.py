# gymdesk/auth/auth_router.py
from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from gymdesk import config
from gymdesk.audit.log import write_audit
from gymdesk.auth import store
from gymdesk.auth.db import get_db
from gymdesk.auth.deps import get_current_user, require_roles, resolve_scope
from gymdesk.auth.models import Gym, User
from gymdesk.auth.permissions import GYM_OWNER, STAFF, SUPER_ADMIN
from gymdesk.auth.security import REFRESH, decode_token, issue_access_token, issue_refresh_token
from gymdesk.common import ok
from gymdesk.errors import AccountBlocked, NotFound, TokenInvalid, Unauthenticated, ValidationFailed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

BLOCKED_MESSAGE = "superadmin has Blocked You"


# ---------- Schemas ----------

class RegisterRequest(BaseModel):
    email: str = Field(..., pattern=r"^\S+@\S+\.\S+$")
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    role: str = STAFF
    gymId: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class ChangePasswordRequest(BaseModel):
    currentPassword: str
    newPassword: str = Field(..., min_length=6)


# ---------- Helpers ----------

def _set_refresh_cookie(response: Response, token: str) -> None:
    secure = config.is_production()
    response.set_cookie(
        key=config.REFRESH_COOKIE_NAME,
        value=token,
        max_age=config.REFRESH_TTL,
        httponly=True,
        secure=secure,
        samesite="none" if secure else "lax",
    )


def _gym_is_blocked(db: Session, user: User) -> bool:
    if user.role == SUPER_ADMIN or not user.gym_id:
        return False
    gym = db.query(Gym).filter(Gym.gym_id == user.gym_id).first()
    return gym is not None and gym.is_active is False


# ---------- Endpoints ----------

@router.post("/register", status_code=201)
def register(
    body: RegisterRequest,
    request: Request,
    caller: User = Depends(require_roles(GYM_OWNER, SUPER_ADMIN)),
    db: Session = Depends(get_db),
):
    """
    Owners create users inside their own gym. A superadmin may create users for any
    gym by naming it in ``gymId``, or another superadmin.
    """
    if caller.role == SUPER_ADMIN:
        gym_id = body.gymId if body.role != SUPER_ADMIN else None
        if gym_id and not db.query(Gym).filter(Gym.gym_id == gym_id).first():
            raise NotFound("Gym not found")
    else:
        if body.role == SUPER_ADMIN:
            raise ValidationFailed("Cannot create a superadmin")
        gym_id = resolve_scope(caller.role, caller.gym_id, [body.gymId])

    user = store.create_user(
        db,
        email=body.email,
        password=body.password,
        name=body.name,
        phone=body.phone,
        role=body.role,
        gym_id=gym_id,
        created_by=caller.id,
    )
    write_audit(db, caller, "user_created", "user", str(user.id), {"email": user.email, "role": user.role}, request)

    return ok("User registered successfully", {
        "user": {"id": str(user.id), "email": user.email, "name": user.name, "role": user.role},
    })


@router.post("/login")
def login(body: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    user = store.find_by_email(db, body.email)
    if not user:
        logger.info("Login failed for %s: unknown email", store.normalize_email(body.email))
        raise Unauthenticated("Invalid email or password")

    if _gym_is_blocked(db, user):
        raise AccountBlocked(BLOCKED_MESSAGE)
    if not user.is_active:
        raise AccountBlocked()

    if not store.check_password(user, body.password):
        logger.info("Login failed for %s: bad password", user.email)
        raise Unauthenticated("Invalid email or password")

    access = issue_access_token(user_id=str(user.id), gym_id=user.gym_id, role=user.role)
    refresh = issue_refresh_token(user_id=str(user.id), gym_id=user.gym_id)
    store.store_refresh_token(db, user, refresh, login=True)
    _set_refresh_cookie(response, refresh)

    write_audit(db, user, "login", "auth", str(user.id), {}, request)
    logger.info("User %s logged in", user.email)

    return ok("Login successful", {"accessToken": access, "user": store.public_user(user)})


@router.post("/refresh")
def refresh(request: Request, response: Response, db: Session = Depends(get_db)):
    presented = request.cookies.get(config.REFRESH_COOKIE_NAME)
    if not presented:
        raise Unauthenticated("Refresh token not found")

    claims = decode_token(presented, REFRESH)
    try:
        user_id = uuid.UUID(str(claims["sub"]))
    except ValueError:
        raise TokenInvalid()

    user = db.get(User, user_id)
    if not user or user.refresh_token != presented:
        logger.warning("Stale or unknown refresh token presented for user %s", user_id)
        raise TokenInvalid("Invalid refresh token")
    if _gym_is_blocked(db, user):
        raise AccountBlocked(BLOCKED_MESSAGE)

    new_refresh = issue_refresh_token(user_id=str(user.id), gym_id=user.gym_id)
    # stored before responding; a concurrent rotation that won first makes this one stale
    if not store.rotate_refresh_token(db, user.id, presented, new_refresh):
        logger.warning("Refresh token for user %s rotated concurrently", user_id)
        raise TokenInvalid("Invalid refresh token")

    db.refresh(user)
    access = issue_access_token(user_id=str(user.id), gym_id=user.gym_id, role=user.role)
    _set_refresh_cookie(response, new_refresh)
    return ok("Token refreshed successfully", {"accessToken": access})


@router.post("/logout")
def logout(request: Request, response: Response, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    store.store_refresh_token(db, user, None)
    response.delete_cookie(config.REFRESH_COOKIE_NAME)
    write_audit(db, user, "logout", "auth", str(user.id), {}, request)
    return ok("Logout successful")


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return ok("User retrieved successfully", {"user": store.public_user(user)})


@router.post("/change-password")
def change_password(body: ChangePasswordRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if not store.check_password(user, body.currentPassword):
        raise Unauthenticated("Current password is incorrect")
    store.set_password(db, user, body.newPassword)
    return ok("Password changed successfully")
