# gymdesk/users/router.py
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from gymdesk.auth import store
from gymdesk.auth.db import get_db
from gymdesk.auth.deps import TenantContext, tenant_scope
from gymdesk.auth.models import User
from gymdesk.auth.permissions import GYM_OWNER, ROLES, SUPER_ADMIN
from gymdesk.common import ok
from gymdesk.errors import NotFound, ValidationFailed

router = APIRouter(prefix="/users", tags=["users"])

owner_only = tenant_scope(GYM_OWNER)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, min_length=1)
    role: Optional[str] = None
    isActive: Optional[bool] = None


def _load(db: Session, gym_id: str, user_pk: str) -> User:
    try:
        pk = uuid.UUID(user_pk)
    except ValueError:
        raise NotFound("User not found")
    user = db.query(User).filter(User.gym_id == gym_id, User.id == pk).first()
    if user is None:
        raise NotFound("User not found")
    return user


@router.get("")
def list_users(
    role: Optional[str] = None,
    isActive: Optional[bool] = None,
    ctx: TenantContext = Depends(owner_only),
    db: Session = Depends(get_db),
):
    q = db.query(User).filter(User.gym_id == ctx.gym_id)
    if role:
        q = q.filter(User.role == role)
    if isActive is not None:
        q = q.filter(User.is_active == isActive)
    users = q.order_by(User.created_at.desc()).all()
    return ok("Users retrieved successfully", {"users": [store.public_user(u) for u in users]})


@router.get("/{id}")
def get_user(id: str = Path(...), ctx: TenantContext = Depends(owner_only), db: Session = Depends(get_db)):
    return ok("User retrieved successfully", {"user": store.public_user(_load(db, ctx.gym_id, id))})


@router.put("/{id}")
def update_user(
    body: UserUpdate,
    id: str = Path(...),
    ctx: TenantContext = Depends(owner_only),
    db: Session = Depends(get_db),
):
    user = _load(db, ctx.gym_id, id)
    if user.id == ctx.user.id and body.isActive is False:
        raise ValidationFailed("Cannot deactivate your own account")
    if body.role is not None and (body.role not in ROLES or body.role == SUPER_ADMIN):
        raise ValidationFailed("Invalid role", {"field": "role"})

    if body.name is not None:
        user.name = body.name.strip()
    if body.phone is not None:
        user.phone = body.phone.strip()
    if body.role is not None:
        user.role = body.role
    if body.isActive is not None:
        user.is_active = body.isActive
    db.commit()
    db.refresh(user)
    return ok("User updated successfully", {"user": store.public_user(user)})


@router.delete("/{id}")
def delete_user(id: str = Path(...), ctx: TenantContext = Depends(owner_only), db: Session = Depends(get_db)):
    user = _load(db, ctx.gym_id, id)
    if user.id == ctx.user.id:
        raise ValidationFailed("Cannot delete your own account")
    user.is_active = False
    db.commit()
    return ok("User deactivated successfully")
