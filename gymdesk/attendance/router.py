# gymdesk/attendance/router.py
from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from gymdesk.attendance.engine import CheckInEngine
from gymdesk.attendance.models import Attendance
from gymdesk.auth.db import get_db, utcnow
from gymdesk.auth.deps import TenantContext, tenant_scope
from gymdesk.auth.permissions import GYM_OWNER, SCAN_QR, STAFF, TRAINER
from gymdesk.common import iso, ok, paginate
from gymdesk.errors import NotFound
from gymdesk.members.models import Member
from gymdesk.realtime.bus import get_publisher

router = APIRouter(prefix="/attendance", tags=["attendance"])

scanners = tenant_scope(permission=SCAN_QR)
viewers = tenant_scope(GYM_OWNER, STAFF, TRAINER)


class ScanRequest(BaseModel):
    qrData: str = Field(..., min_length=1)


def _day_bounds(day: date):
    start = datetime(day.year, day.month, day.day)
    return start, start + timedelta(days=1)


@router.post("/scan")
def scan(body: ScanRequest, ctx: TenantContext = Depends(scanners), db: Session = Depends(get_db)):
    engine = CheckInEngine(db, get_publisher())
    outcome = engine.scan(ctx.gym_id, body.qrData, verified_by=ctx.user.id)

    if not outcome.access_granted:
        message = "Access denied"
    elif outcome.skipped_duplicate:
        message = "Member already checked in recently"
    else:
        message = "Check-in successful"
    return ok(message, outcome.to_dict(engine.window_minutes))


@router.get("")
def list_attendance(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    startDate: Optional[date] = None,
    endDate: Optional[date] = None,
    memberId: Optional[str] = None,
    accessGranted: Optional[bool] = None,
    ctx: TenantContext = Depends(viewers),
    db: Session = Depends(get_db),
):
    q = db.query(Attendance).filter(Attendance.gym_id == ctx.gym_id)
    if startDate is not None:
        q = q.filter(Attendance.check_in_time >= _day_bounds(startDate)[0])
    if endDate is not None:
        # end date is inclusive of the whole day
        q = q.filter(Attendance.check_in_time < _day_bounds(endDate)[1])
    if memberId:
        try:
            q = q.filter(Attendance.member_id == uuid.UUID(memberId))
        except ValueError:
            raise NotFound("Member not found")
    if accessGranted is not None:
        q = q.filter(Attendance.access_granted == accessGranted)

    total = q.count()
    pagination = paginate(page, limit, total)
    rows = q.order_by(Attendance.check_in_time.desc()).offset(pagination["skip"]).limit(limit).all()
    return ok("Attendance records retrieved successfully", {
        "attendance": [r.to_dict() for r in rows],
        "pagination": pagination,
    })


@router.get("/member/{memberId}")
def member_history(
    memberId: str = Path(...),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    ctx: TenantContext = Depends(viewers),
    db: Session = Depends(get_db),
):
    try:
        pk = uuid.UUID(memberId)
    except ValueError:
        raise NotFound("Member not found")
    member = db.query(Member).filter(Member.gym_id == ctx.gym_id, Member.id == pk).first()
    if member is None:
        raise NotFound("Member not found")

    q = db.query(Attendance).filter(Attendance.gym_id == ctx.gym_id, Attendance.member_id == member.id)
    total = q.count()
    pagination = paginate(page, limit, total)
    rows = q.order_by(Attendance.check_in_time.desc()).offset(pagination["skip"]).limit(limit).all()
    return ok("Member attendance retrieved successfully", {
        "member": member.summary(),
        "attendance": [r.to_dict() for r in rows],
        "pagination": pagination,
    })


@router.get("/stats/today")
def today_stats(ctx: TenantContext = Depends(viewers), db: Session = Depends(get_db)):
    now = utcnow()
    start, end = _day_bounds(now.date())
    base = db.query(Attendance).filter(
        Attendance.gym_id == ctx.gym_id,
        Attendance.check_in_time >= start,
        Attendance.check_in_time < end,
    )
    granted = base.filter(Attendance.access_granted.is_(True)).count()
    denied = base.filter(Attendance.access_granted.is_(False)).count()
    return ok("Today's statistics retrieved successfully", {
        "stats": {
            "totalCheckIns": granted,
            "deniedAccess": denied,
            # no check-out is recorded, so everyone admitted today counts as in
            "currentlyInGym": granted,
            "date": iso(start),
        },
    })
