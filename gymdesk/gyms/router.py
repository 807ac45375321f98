# gymdesk/gyms/router.py
"""Tenant management. Superadmin only, so these routes carry no tenant scope."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from gymdesk.audit.log import write_audit
from gymdesk.audit.models import AuditEntry
from gymdesk.auth import store
from gymdesk.auth.db import get_db
from gymdesk.auth.deps import require_roles
from gymdesk.auth.models import Gym, User
from gymdesk.auth.permissions import GYM_OWNER, SUPER_ADMIN
from gymdesk.auth.utils_ids import new_gym_id
from gymdesk.common import iso, ok, paginate
from gymdesk.errors import DuplicateIdentity, NotFound
from gymdesk.members.models import ACTIVE, Member

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gyms", tags=["gyms"])

superadmin_only = require_roles(SUPER_ADMIN)


# ---------- Schemas ----------

class OwnerDetails(BaseModel):
    email: str = Field(..., pattern=r"^\S+@\S+\.\S+$")
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1)
    phone: str = ""


class GymCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    address: Dict[str, Any] = Field(default_factory=dict)
    contact: Dict[str, Any] = Field(default_factory=dict)
    settings: Dict[str, Any] = Field(default_factory=dict)
    ownerDetails: OwnerDetails


class GymUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    address: Optional[Dict[str, Any]] = None
    contact: Optional[Dict[str, Any]] = None
    settings: Optional[Dict[str, Any]] = None
    isActive: Optional[bool] = None


DEFAULT_SETTINGS = {"timezone": "UTC", "currency": "USD", "maxMembers": None}


# ---------- Helpers ----------

def _gym_dict(g: Gym) -> Dict[str, Any]:
    return {
        "id": str(g.id),
        "gymId": g.gym_id,
        "name": g.name,
        "description": g.description,
        "address": g.address or {},
        "contact": g.contact or {},
        "settings": g.settings or {},
        "isActive": g.is_active,
        "createdAt": iso(g.created_at),
    }


def _load_gym(db: Session, gym_pk: str) -> Gym:
    try:
        pk = uuid.UUID(gym_pk)
    except ValueError:
        raise NotFound("Gym not found")
    gym = db.get(Gym, pk)
    if gym is None:
        raise NotFound("Gym not found")
    return gym


def _unique_gym_id(db: Session) -> str:
    while True:
        candidate = new_gym_id()
        if not db.query(Gym).filter(Gym.gym_id == candidate).first():
            return candidate


# ---------- Endpoints ----------

@router.post("", status_code=201)
def create_gym(
    body: GymCreate,
    request: Request,
    admin: User = Depends(superadmin_only),
    db: Session = Depends(get_db),
):
    if store.find_by_email(db, body.ownerDetails.email):
        raise DuplicateIdentity()

    gym = Gym(
        gym_id=_unique_gym_id(db),
        name=body.name.strip(),
        description=body.description,
        address=body.address,
        contact=body.contact,
        settings={**DEFAULT_SETTINGS, **body.settings},
        created_by=admin.id,
    )
    db.add(gym)
    db.flush()

    owner = store.create_user(
        db,
        email=body.ownerDetails.email,
        password=body.ownerDetails.password,
        name=body.ownerDetails.name,
        phone=body.ownerDetails.phone,
        role=GYM_OWNER,
        gym_id=gym.gym_id,
        created_by=admin.id,
        commit=False,
    )
    db.commit()
    db.refresh(gym)

    write_audit(db, admin, "gym_created", "gym", str(gym.id),
                {"gymId": gym.gym_id, "name": gym.name, "ownerEmail": owner.email}, request)
    logger.info("Gym %s created with owner %s", gym.gym_id, owner.email)

    return ok("Gym and owner created successfully", {
        "gym": _gym_dict(gym),
        "owner": {"id": str(owner.id), "email": owner.email, "name": owner.name,
                  "phone": owner.phone, "role": owner.role},
    })


@router.get("")
def list_gyms(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = "",
    isActive: Optional[bool] = None,
    _: User = Depends(superadmin_only),
    db: Session = Depends(get_db),
):
    q = db.query(Gym)
    if search:
        like = f"%{search.lower()}%"
        q = q.filter(or_(func.lower(Gym.name).like(like), func.lower(Gym.gym_id).like(like)))
    if isActive is not None:
        q = q.filter(Gym.is_active == isActive)

    total = q.count()
    pagination = paginate(page, limit, total)
    gyms: List[Gym] = q.order_by(Gym.created_at.desc()).offset(pagination["skip"]).limit(limit).all()

    counts: Dict[str, int] = {}
    gym_ids = [g.gym_id for g in gyms]
    if gym_ids:
        rows = (
            db.query(Member.gym_id, func.count(Member.id))
            .filter(Member.gym_id.in_(gym_ids))
            .group_by(Member.gym_id)
            .all()
        )
        counts = {gid: n for gid, n in rows}

    return ok("Gyms retrieved successfully", {
        "gyms": [{**_gym_dict(g), "memberCount": counts.get(g.gym_id, 0)} for g in gyms],
        "pagination": pagination,
    })


@router.get("/stats")
def gym_stats(_: User = Depends(superadmin_only), db: Session = Depends(get_db)):
    total = db.query(Gym).count()
    active = db.query(Gym).filter(Gym.is_active.is_(True)).count()
    recent = db.query(Gym).order_by(Gym.created_at.desc()).limit(5).all()
    return ok("Gym statistics retrieved successfully", {
        "stats": {"total": total, "active": active, "inactive": total - active},
        "recentGyms": [
            {"name": g.name, "gymId": g.gym_id, "createdAt": iso(g.created_at), "isActive": g.is_active}
            for g in recent
        ],
    })


@router.get("/analytics/system")
def system_analytics(_: User = Depends(superadmin_only), db: Session = Depends(get_db)):
    total_gyms = db.query(Gym).count()
    active_gyms = db.query(Gym).filter(Gym.is_active.is_(True)).count()

    # members of hard-deleted gyms are orphans and not counted
    known = db.query(Gym.gym_id)
    total_members = db.query(Member).filter(Member.gym_id.in_(known)).count()
    active_members = (
        db.query(Member)
        .filter(Member.gym_id.in_(known), Member.is_active.is_(True), Member.membership_status == ACTIVE)
        .count()
    )
    recent = db.query(AuditEntry).order_by(AuditEntry.created_at.desc()).limit(10).all()

    return ok("System analytics retrieved successfully", {
        "stats": {
            "gyms": {"total": total_gyms, "active": active_gyms, "blocked": total_gyms - active_gyms},
            "members": {"total": total_members, "active": active_members,
                        "inactive": total_members - active_members},
        },
        "recentActivity": [_audit_dict(e) for e in recent],
    })


def _audit_dict(e: AuditEntry) -> Dict[str, Any]:
    return {
        "id": str(e.id),
        "user": str(e.user_id),
        "action": e.action,
        "resource": e.resource,
        "resourceId": e.resource_id,
        "details": e.details or {},
        "ipAddress": e.ip_address,
        "userAgent": e.user_agent,
        "createdAt": iso(e.created_at),
    }


@router.get("/analytics/audit-logs")
def audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    action: Optional[str] = None,
    resource: Optional[str] = None,
    userId: Optional[str] = None,
    _: User = Depends(superadmin_only),
    db: Session = Depends(get_db),
):
    q = db.query(AuditEntry)
    if action:
        q = q.filter(AuditEntry.action == action)
    if resource:
        q = q.filter(AuditEntry.resource == resource)
    if userId:
        try:
            q = q.filter(AuditEntry.user_id == uuid.UUID(userId))
        except ValueError:
            raise NotFound("User not found")

    total = q.count()
    pagination = paginate(page, limit, total)
    logs = q.order_by(AuditEntry.created_at.desc()).offset(pagination["skip"]).limit(limit).all()
    return ok("Audit logs retrieved successfully", {
        "logs": [_audit_dict(e) for e in logs],
        "pagination": pagination,
    })


@router.get("/{id}")
def get_gym(id: str = Path(...), _: User = Depends(superadmin_only), db: Session = Depends(get_db)):
    gym = _load_gym(db, id)
    total_users = db.query(User).filter(User.gym_id == gym.gym_id).count()
    total_members = db.query(Member).filter(Member.gym_id == gym.gym_id).count()
    return ok("Gym retrieved successfully", {
        "gym": _gym_dict(gym),
        "stats": {"totalUsers": total_users, "totalMembers": total_members},
    })


@router.put("/{id}")
def update_gym(
    body: GymUpdate,
    request: Request,
    id: str = Path(...),
    admin: User = Depends(superadmin_only),
    db: Session = Depends(get_db),
):
    gym = _load_gym(db, id)

    if body.name is not None:
        gym.name = body.name
    if body.description is not None:
        gym.description = body.description
    if body.address is not None:
        gym.address = body.address
    if body.contact is not None:
        gym.contact = body.contact
    if body.settings is not None:
        gym.settings = {**(gym.settings or {}), **body.settings}
    if body.isActive is not None:
        gym.is_active = body.isActive
        # users follow the gym's active flag
        db.query(User).filter(User.gym_id == gym.gym_id).update(
            {User.is_active: body.isActive}, synchronize_session=False
        )
    db.commit()
    db.refresh(gym)

    if body.isActive is False:
        action = "gym_blocked"
    elif body.isActive is True:
        action = "gym_unblocked"
    else:
        action = "gym_updated"
    write_audit(db, admin, action, "gym", str(gym.id),
                {"gymId": gym.gym_id, "name": gym.name, "changes": body.model_dump(exclude_none=True)}, request)

    return ok("Gym updated successfully", {"gym": _gym_dict(gym)})


@router.delete("/{id}")
def delete_gym(
    request: Request,
    id: str = Path(...),
    hardDelete: bool = Body(False, embed=True),
    admin: User = Depends(superadmin_only),
    db: Session = Depends(get_db),
):
    gym = _load_gym(db, id)

    if hardDelete:
        # removes the gym row only; its users, members and records are left orphaned
        info = {"gymId": gym.gym_id, "name": gym.name, "hardDelete": True}
        gym_pk = str(gym.id)
        db.delete(gym)
        db.commit()
        write_audit(db, admin, "gym_deleted", "gym", gym_pk, info, request)
        logger.warning("Gym %s permanently deleted by %s", info["gymId"], admin.email)
        return ok("Gym permanently deleted")

    gym.is_active = False
    db.query(User).filter(User.gym_id == gym.gym_id).update({User.is_active: False}, synchronize_session=False)
    db.commit()
    db.refresh(gym)
    write_audit(db, admin, "gym_blocked", "gym", str(gym.id), {"gymId": gym.gym_id, "name": gym.name}, request)
    return ok("Gym deactivated successfully", {"gym": _gym_dict(gym)})
