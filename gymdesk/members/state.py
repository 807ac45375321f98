# gymdesk/members/state.py
"""
Membership state engine.

Admission is a pure function of ``is_active``, ``membership_status``, the expiry
comparison and ``fee_status``. All functions take ``now`` (naive UTC) so callers
and tests control the clock.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from gymdesk.auth.db import utcnow
from gymdesk.members.models import ACTIVE, Member, OVERDUE, PAID
from gymdesk.plans.models import Plan

REASON_INACTIVE = "Member account is inactive"
REASON_EXPIRED = "Membership has expired"
REASON_FEE_OVERDUE = "Fee payment is overdue"
REASON_DENIED = "Access denied"


def effective_expiry(member: Member) -> Optional[datetime]:
    return member.expiry_date or member.membership_end_date


def is_expired(member: Member, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    expiry = effective_expiry(member)
    return expiry is None or now > expiry


def is_fee_overdue(member: Member, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    if member.fee_status == OVERDUE:
        return True
    return member.next_payment_due is not None and now > member.next_payment_due


def can_access(member: Member, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return (
        bool(member.is_active)
        and member.membership_status == ACTIVE
        and not is_expired(member, now)
        and member.fee_status == PAID
    )


def denial_reason(member: Member, now: Optional[datetime] = None) -> Optional[str]:
    """First failing predicate in fixed priority order, or None when access is allowed."""
    now = now or utcnow()
    if can_access(member, now):
        return None
    if not member.is_active:
        return REASON_INACTIVE
    if is_expired(member, now):
        return REASON_EXPIRED
    if is_fee_overdue(member, now):
        return REASON_FEE_OVERDUE
    return REASON_DENIED


def set_membership_end(member: Member, end: datetime) -> None:
    """Single write path for the end date; keeps ``expiry_date`` equal to it."""
    member.membership_end_date = end
    member.expiry_date = end


def start_membership(member: Member, plan: Plan, start: Optional[datetime] = None) -> None:
    start = start or utcnow()
    member.membership_plan_id = plan.id
    member.plan = plan
    member.membership_start_date = start
    member.membership_status = ACTIVE
    set_membership_end(member, start + timedelta(days=plan.duration_days))


def renew(member: Member, plan: Plan, now: Optional[datetime] = None) -> Member:
    """
    Extend a membership by one period of ``plan``.

    The period starts at the current expiry when that is still in the future,
    otherwise at ``now``. Passing a plan other than the stored one switches the
    membership to it and restarts it at ``now``. Expired members are recoverable.
    """
    now = now or utcnow()
    current = effective_expiry(member)
    base = current if current is not None and current > now else now

    set_membership_end(member, base + timedelta(days=plan.duration_days))
    member.membership_status = ACTIVE
    member.is_active = True
    member.fee_status = PAID
    member.last_payment_date = now

    if plan.id != member.membership_plan_id:
        member.membership_plan_id = plan.id
        member.plan = plan
        member.membership_start_date = now
    return member


def status_detail(member: Member) -> dict:
    return {
        **member.summary(),
        "membershipStatus": member.membership_status,
        "membershipEndDate": member.membership_end_date.isoformat() + "Z" if member.membership_end_date else None,
        "feeStatus": member.fee_status,
    }
