# gymdesk/auth/store.py
"""
Credential store: user creation, password checks and the single live refresh token.

The password hash and the refresh token never leave this module through
``public_user``; routers serialize users only through it.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from gymdesk.auth.db import utcnow
from gymdesk.auth.models import User
from gymdesk.auth.permissions import ROLES, SUPER_ADMIN
from gymdesk.auth.security import hash_password, verify_password
from gymdesk.errors import DuplicateIdentity, ValidationFailed

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def find_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def create_user(
    db: Session,
    *,
    email: str,
    password: str,
    name: str,
    phone: str = "",
    role: str,
    gym_id: Optional[str] = None,
    created_by: Optional[uuid.UUID] = None,
    commit: bool = True,
) -> User:
    email = normalize_email(email)
    if role not in ROLES:
        raise ValidationFailed(f"Invalid role: {role}")
    if role == SUPER_ADMIN and gym_id:
        raise ValidationFailed("A superadmin cannot belong to a gym")
    if role != SUPER_ADMIN and not gym_id:
        raise ValidationFailed("Gym ID is required for this role")
    if find_by_email(db, email):
        raise DuplicateIdentity()

    user = User(
        email=email,
        password_hash=hash_password(password),
        name=name.strip(),
        phone=(phone or "").strip(),
        role=role,
        gym_id=gym_id if role != SUPER_ADMIN else None,
        created_by=created_by,
    )
    db.add(user)
    if commit:
        db.commit()
        db.refresh(user)
    else:
        db.flush()
    return user


def check_password(user: User, password: str) -> bool:
    return verify_password(password, user.password_hash)


def set_password(db: Session, user: User, new_password: str) -> None:
    # the only place a hash is recomputed
    user.password_hash = hash_password(new_password)
    db.commit()


def store_refresh_token(db: Session, user: User, token: Optional[str], *, login: bool = False) -> None:
    user.refresh_token = token
    if login:
        user.last_login = utcnow()
    db.commit()


def rotate_refresh_token(db: Session, user_id: uuid.UUID, presented: str, new_token: str) -> bool:
    """
    Swap the stored refresh token only if it still equals ``presented``.

    Returns False when the presented value is stale, including the case where a
    concurrent refresh rotated it first; the last committed writer wins.
    """
    result = db.execute(
        update(User)
        .where(User.id == user_id, User.refresh_token == presented, User.is_active.is_(True))
        .values(refresh_token=new_token)
    )
    db.commit()
    return result.rowcount == 1


def public_user(user: User) -> Dict[str, Any]:
    return {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "phone": user.phone,
        "role": user.role,
        "gymId": user.gym_id,
        "isActive": user.is_active,
        "lastLogin": user.last_login.isoformat() + "Z" if user.last_login else None,
        "createdAt": user.created_at.isoformat() + "Z" if user.created_at else None,
    }
