# gymdesk/auth/deps.py
"""
Request gates: authentication, role/capability checks and tenant scoping.

Every tenant-owned query filters on ``TenantContext.gym_id``; it is the only
isolation boundary in the system.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, List, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from gymdesk.auth.db import get_db
from gymdesk.auth.models import User
from gymdesk.auth.permissions import SUPER_ADMIN, allowed, has_permission
from gymdesk.auth.security import ACCESS, decode_token
from gymdesk.errors import (
    CrossTenantAccess,
    InsufficientRole,
    NoTenantContext,
    TokenInvalid,
    Unauthenticated,
)

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)

_GYM_ID_KEYS = ("gymId", "gym_id")


@dataclass
class TenantContext:
    user: User
    gym_id: Optional[str]

    @property
    def role(self) -> str:
        return self.user.role


def user_from_token(db: Session, token: str) -> User:
    claims = decode_token(token, ACCESS)
    try:
        user_id = uuid.UUID(str(claims["sub"]))
    except ValueError:
        raise TokenInvalid()

    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise Unauthenticated("User not found or inactive.")
    return user


def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if not creds or creds.scheme.lower() != "bearer":
        raise Unauthenticated("Authentication required. No token provided.")
    return user_from_token(db, creds.credentials)


def resolve_scope(role: str, user_gym_id: Optional[str], supplied: Iterable[Optional[str]] = ()) -> Optional[str]:
    """
    Resolve the tenant scope for a caller.

    A superadmin is unscoped (None). Everyone else is scoped to their stored gym;
    any gym id the caller supplied must equal it and is otherwise ignored.
    """
    if role == SUPER_ADMIN:
        return None
    if not user_gym_id:
        raise NoTenantContext()
    for value in supplied:
        if value and str(value) != user_gym_id:
            raise CrossTenantAccess()
    return user_gym_id


async def _supplied_gym_ids(request: Request) -> List[str]:
    found: List[str] = []
    for key in _GYM_ID_KEYS:
        if request.path_params.get(key):
            found.append(str(request.path_params[key]))
        if request.query_params.get(key):
            found.append(request.query_params[key])

    if "application/json" in request.headers.get("content-type", ""):
        raw = await request.body()
        if raw:
            try:
                body = json.loads(raw)
            except ValueError:
                body = None  # body validation reports it
            if isinstance(body, dict):
                found.extend(str(body[k]) for k in _GYM_ID_KEYS if body.get(k))
    return found


def require_roles(*roles: str):
    """Coarse gate on role membership."""
    def _dep(user: User = Depends(get_current_user)) -> User:
        if not allowed(user.role, roles):
            raise InsufficientRole()
        return user
    return _dep


def tenant_scope(*roles: str, permission: Optional[str] = None):
    """
    Authenticate, resolve the tenant and apply the role gate, in that order.
    With no roles given, any authenticated tenant user passes. ``permission``
    adds the capability-table check on top of the role gate.
    """
    async def _dep(request: Request, user: User = Depends(get_current_user)) -> TenantContext:
        try:
            gym_id = resolve_scope(user.role, user.gym_id, await _supplied_gym_ids(request))
        except CrossTenantAccess:
            logger.warning("Cross-tenant reference by user %s on %s", user.id, request.url.path)
            raise
        if gym_id is None:
            raise NoTenantContext("Access denied. Gym context required.")
        if roles and not allowed(user.role, roles):
            raise InsufficientRole()
        if permission and not has_permission(user.role, permission):
            raise InsufficientRole(f"Access denied. Required permission: {permission}")
        return TenantContext(user=user, gym_id=gym_id)
    return _dep
