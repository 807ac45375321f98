# gymdesk/members/router.py
from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from gymdesk.auth.db import get_db, utcnow
from gymdesk.auth.deps import TenantContext, tenant_scope
from gymdesk.auth.permissions import GYM_OWNER, STAFF, TRAINER
from gymdesk.auth.utils_ids import new_member_id
from gymdesk.common import ok, paginate
from gymdesk.errors import NotFound, QRCodePermanent, ValidationFailed
from gymdesk.members import state
from gymdesk.members.models import (
    ACTIVE,
    EXPIRED,
    FEE_STATUSES,
    MEMBERSHIP_STATUSES,
    OVERDUE,
    PAID,
    PENDING,
    Member,
)
from gymdesk.members.qr import encode_payload, render_png_data_url
from gymdesk.plans.models import Plan

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/members", tags=["members"])

managers = tenant_scope(GYM_OWNER, STAFF)
readers = tenant_scope(GYM_OWNER, STAFF, TRAINER)

EXPIRING_SOON_DAYS = 7
_SORT_FIELDS = {
    "createdAt": Member.created_at,
    "name": Member.name,
    "memberId": Member.member_id,
    "expiryDate": Member.membership_end_date,
}


# ---------- Schemas ----------

class MemberCreate(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: Optional[str] = None
    dateOfBirth: Optional[date] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    photo: Optional[str] = None
    emergencyContact: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    membershipPlan: str
    feeStatus: str = PAID


class MemberUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    dateOfBirth: Optional[date] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    photo: Optional[str] = None
    emergencyContact: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    membershipPlan: Optional[str] = None
    membershipStatus: Optional[str] = None
    feeStatus: Optional[str] = None
    nextPaymentDue: Optional[date] = None
    isActive: Optional[bool] = None


class RenewRequest(BaseModel):
    planId: Optional[str] = None


# ---------- Helpers ----------

def _as_uuid(value: str, what: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFound(f"{what} not found")


def load_member(db: Session, gym_id: str, member_pk: str) -> Member:
    member = (
        db.query(Member)
        .filter(Member.gym_id == gym_id, Member.id == _as_uuid(member_pk, "Member"))
        .first()
    )
    if member is None:
        raise NotFound("Member not found")
    return member


def load_plan(db: Session, gym_id: str, plan_pk: str, active_only: bool = True) -> Plan:
    q = db.query(Plan).filter(Plan.gym_id == gym_id, Plan.id == _as_uuid(plan_pk, "Membership plan"))
    if active_only:
        q = q.filter(Plan.is_active.is_(True))
    plan = q.first()
    if plan is None:
        raise NotFound("Membership plan not found")
    return plan


def _unique_member_id(db: Session, gym_id: str) -> str:
    while True:
        candidate = new_member_id()
        exists = db.query(Member.id).filter(Member.gym_id == gym_id, Member.member_id == candidate).first()
        if not exists:
            return candidate


def _check_choice(value: Optional[str], choices, field: str) -> None:
    if value is not None and value not in choices:
        raise ValidationFailed(f"Invalid {field}", {"field": field, "allowed": list(choices)})


def _day_start(d: date):
    return datetime(d.year, d.month, d.day)


# ---------- Endpoints ----------

@router.post("", status_code=201)
def create_member(body: MemberCreate, ctx: TenantContext = Depends(managers), db: Session = Depends(get_db)):
    _check_choice(body.feeStatus, FEE_STATUSES, "feeStatus")
    plan = load_plan(db, ctx.gym_id, body.membershipPlan)

    member_id = _unique_member_id(db, ctx.gym_id)
    qr_data = encode_payload(ctx.gym_id, member_id)
    member = Member(
        gym_id=ctx.gym_id,
        member_id=member_id,
        name=body.name.strip(),
        email=(body.email or "").strip().lower() or None,
        phone=body.phone.strip(),
        date_of_birth=body.dateOfBirth,
        gender=body.gender,
        address=body.address,
        photo=body.photo,
        emergency_contact=body.emergencyContact,
        notes=body.notes,
        fee_status=body.feeStatus,
        qr_data=qr_data,
        qr_code=render_png_data_url(qr_data),
        created_by=ctx.user.id,
    )
    now = utcnow()
    state.start_membership(member, plan, now)
    if body.feeStatus == PAID:
        member.last_payment_date = now

    db.add(member)
    db.commit()
    db.refresh(member)
    logger.info("Member %s created in %s", member.member_id, ctx.gym_id)
    return ok("Member created successfully", {"member": member.to_dict()})


@router.get("")
def list_members(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = "",
    status: Optional[str] = None,
    feeStatus: Optional[str] = None,
    sortBy: str = "createdAt",
    sortOrder: str = Query("desc", pattern="^(asc|desc)$"),
    ctx: TenantContext = Depends(readers),
    db: Session = Depends(get_db),
):
    q = db.query(Member).filter(Member.gym_id == ctx.gym_id, Member.is_active.is_(True))
    if search:
        like = f"%{search.lower()}%"
        q = q.filter(or_(
            func.lower(Member.name).like(like),
            func.lower(Member.member_id).like(like),
            func.lower(Member.email).like(like),
            Member.phone.like(f"%{search}%"),
        ))
    if status:
        q = q.filter(Member.membership_status == status)
    if feeStatus:
        q = q.filter(Member.fee_status == feeStatus)

    column = _SORT_FIELDS.get(sortBy, Member.created_at)
    q = q.order_by(column.asc() if sortOrder == "asc" else column.desc())

    total = q.count()
    pagination = paginate(page, limit, total)
    members = q.offset(pagination["skip"]).limit(limit).all()
    return ok("Members retrieved successfully", {
        "members": [m.to_dict() for m in members],
        "pagination": pagination,
    })


@router.get("/stats")
def member_stats(ctx: TenantContext = Depends(managers), db: Session = Depends(get_db)):
    now = utcnow()
    base = db.query(Member).filter(Member.gym_id == ctx.gym_id, Member.is_active.is_(True))
    total = base.count()
    active = base.filter(Member.membership_status == ACTIVE, Member.membership_end_date >= now).count()
    expired = base.filter(or_(Member.membership_status == EXPIRED, Member.membership_end_date < now)).count()
    pending = base.filter(Member.fee_status.in_((PENDING, OVERDUE))).count()
    expiring_soon = base.filter(
        Member.membership_status == ACTIVE,
        Member.membership_end_date >= now,
        Member.membership_end_date <= now + timedelta(days=EXPIRING_SOON_DAYS),
    ).count()
    return ok("Member statistics retrieved successfully", {
        "stats": {
            "total": total,
            "active": active,
            "expired": expired,
            "pendingPayments": pending,
            "expiringSoon": expiring_soon,
        },
    })


@router.get("/member-id/{memberId}")
def get_by_member_id(
    memberId: str = Path(...),
    ctx: TenantContext = Depends(readers),
    db: Session = Depends(get_db),
):
    member = db.query(Member).filter(Member.gym_id == ctx.gym_id, Member.member_id == memberId).first()
    if member is None:
        raise NotFound("Member not found")
    return ok("Member retrieved successfully", {"member": member.to_dict()})


@router.get("/{id}")
def get_member(id: str = Path(...), ctx: TenantContext = Depends(readers), db: Session = Depends(get_db)):
    member = load_member(db, ctx.gym_id, id)
    return ok("Member retrieved successfully", {
        "member": member.to_dict(),
        "access": {"canAccess": state.can_access(member), "denialReason": state.denial_reason(member)},
    })


@router.put("/{id}")
def update_member(
    body: MemberUpdate,
    id: str = Path(...),
    ctx: TenantContext = Depends(managers),
    db: Session = Depends(get_db),
):
    member = load_member(db, ctx.gym_id, id)
    _check_choice(body.membershipStatus, MEMBERSHIP_STATUSES, "membershipStatus")
    _check_choice(body.feeStatus, FEE_STATUSES, "feeStatus")

    simple = {
        "name": "name",
        "phone": "phone",
        "email": "email",
        "dateOfBirth": "date_of_birth",
        "gender": "gender",
        "address": "address",
        "photo": "photo",
        "emergencyContact": "emergency_contact",
        "notes": "notes",
        "membershipStatus": "membership_status",
        "feeStatus": "fee_status",
        "isActive": "is_active",
    }
    for field, column in simple.items():
        value = getattr(body, field)
        if value is not None:
            setattr(member, column, value)
    if body.nextPaymentDue is not None:
        member.next_payment_due = _day_start(body.nextPaymentDue)

    if body.membershipPlan is not None and _as_uuid(body.membershipPlan, "Membership plan") != member.membership_plan_id:
        plan = load_plan(db, ctx.gym_id, body.membershipPlan)
        # the start date stays; the end date follows the new plan duration
        state.start_membership(member, plan, member.membership_start_date)

    member.updated_by = ctx.user.id
    db.commit()
    db.refresh(member)
    return ok("Member updated successfully", {"member": member.to_dict()})


@router.delete("/{id}")
def delete_member(id: str = Path(...), ctx: TenantContext = Depends(managers), db: Session = Depends(get_db)):
    member = load_member(db, ctx.gym_id, id)
    member.is_active = False
    member.updated_by = ctx.user.id
    db.commit()
    logger.info("Member %s deactivated in %s", member.member_id, ctx.gym_id)
    return ok("Member deleted successfully")


@router.post("/{id}/regenerate-qr")
def regenerate_qr(id: str = Path(...), ctx: TenantContext = Depends(managers), db: Session = Depends(get_db)):
    load_member(db, ctx.gym_id, id)
    raise QRCodePermanent()


@router.post("/{id}/renew")
def renew_member(
    body: Optional[RenewRequest] = None,
    id: str = Path(...),
    ctx: TenantContext = Depends(managers),
    db: Session = Depends(get_db),
):
    member = load_member(db, ctx.gym_id, id)
    if body is not None and body.planId:
        plan = load_plan(db, ctx.gym_id, body.planId)
    else:
        # the current plan stays renewable after it is retired
        plan = load_plan(db, ctx.gym_id, str(member.membership_plan_id), active_only=False)

    state.renew(member, plan, utcnow())
    member.updated_by = ctx.user.id
    db.commit()
    db.refresh(member)
    logger.info("Membership of %s renewed until %s", member.member_id, member.membership_end_date)
    return ok("Membership renewed successfully", {"member": member.to_dict()})
