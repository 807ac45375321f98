# gymdesk/attendance/engine.py
"""
Check-in engine: scanned payload -> validate -> evaluate -> record -> notify.

Steps run sequentially with no compensating rollback. A denial writes the
attendance row first, then the alert, then publishes; if the alert write
fails the attendance row stands and the error propagates.

Two scans of one member racing each other can both pass the duplicate check
and produce one extra granted row. That overcount is tolerated.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from gymdesk import config
from gymdesk.attendance.models import ACCESS_DENIED, MEMBERSHIP_EXPIRED, Alert, Attendance
from gymdesk.auth.db import utcnow
from gymdesk.auth.permissions import GYM_OWNER, STAFF, room_for
from gymdesk.common import iso
from gymdesk.errors import UnknownMember
from gymdesk.members import state
from gymdesk.members.models import Member
from gymdesk.members.qr import validate_payload

logger = logging.getLogger(__name__)

NOTIFY_ROLES = (GYM_OWNER, STAFF)
CHECK_IN_EVENT = "check-in"
ACCESS_DENIED_EVENT = "access-denied"


@dataclass
class ScanOutcome:
    access_granted: bool
    member: Member
    attendance: Attendance
    denial_reason: Optional[str] = None
    alert: Optional[Alert] = None
    skipped_duplicate: bool = False

    def to_dict(self, window_minutes: int) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "accessGranted": self.access_granted,
            "attendance": self.attendance.to_dict(),
        }
        if not self.access_granted:
            out["denialReason"] = self.denial_reason
            out["member"] = state.status_detail(self.member)
            return out

        plan = self.member.plan
        out["member"] = {
            **self.member.summary(),
            "membershipPlan": plan.name if plan is not None else None,
            "membershipEndDate": iso(self.member.membership_end_date),
            "photo": self.member.photo,
        }
        if self.skipped_duplicate:
            out["skippedDuplicate"] = True
            out["message"] = f"Member already checked in within last {window_minutes} minutes"
        return out


class CheckInEngine:
    def __init__(self, db: Session, publisher: Any, window_minutes: Optional[int] = None):
        self.db = db
        self.publisher = publisher
        self.window_minutes = window_minutes if window_minutes is not None else config.DUPLICATE_SCAN_WINDOW_MINUTES

    # ---------- steps ----------

    def resolve_member(self, gym_id: str, member_id: str) -> Member:
        member = (
            self.db.query(Member)
            .filter(Member.gym_id == gym_id, Member.member_id == member_id)
            .first()
        )
        if member is None:
            raise UnknownMember()
        return member

    def recent_grant(self, gym_id: str, member: Member, now: datetime) -> Optional[Attendance]:
        window_start = now - timedelta(minutes=self.window_minutes)
        return (
            self.db.query(Attendance)
            .filter(
                Attendance.gym_id == gym_id,
                Attendance.member_id == member.id,
                Attendance.access_granted.is_(True),
                Attendance.check_in_time >= window_start,
            )
            .order_by(Attendance.check_in_time.desc())
            .first()
        )

    def _record(
        self,
        gym_id: str,
        member: Member,
        verified_by: Optional[uuid.UUID],
        now: datetime,
        granted: bool,
        reason: Optional[str] = None,
        method: str = "qr",
    ) -> Attendance:
        record = Attendance(
            gym_id=gym_id,
            member_id=member.id,
            check_in_time=now,
            method=method,
            verified_by=verified_by,
            access_granted=granted,
            denial_reason=reason,
            expires_at=now + timedelta(days=config.ATTENDANCE_RETENTION_DAYS),
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def _raise_alert(self, gym_id: str, member: Member, reason: str, now: datetime) -> Alert:
        alert_type = MEMBERSHIP_EXPIRED if state.is_expired(member, now) else ACCESS_DENIED
        alert = Alert(
            gym_id=gym_id,
            type=alert_type,
            member_id=member.id,
            title="Access Denied",
            message=f"{member.name} ({member.phone}) was denied access. Reason: {reason}",
            priority="high",
            read_by=[],
            meta={
                "memberId": member.member_id,
                "memberName": member.name,
                "memberPhone": member.phone,
                "denialReason": reason,
            },
            created_at=now,
            expires_at=now + timedelta(days=config.ALERT_RETENTION_DAYS),
        )
        alert.roles = list(NOTIFY_ROLES)
        try:
            self.db.add(alert)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(alert)
        return alert

    def _publish(self, event: str, data: Dict[str, Any]) -> None:
        try:
            self.publisher.publish_many([room_for(role) for role in NOTIFY_ROLES], event, data)
        except Exception:
            logger.exception("Publishing %s failed", event)

    # ---------- entry point ----------

    def scan(
        self,
        gym_id: str,
        payload: str,
        verified_by: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
        method: str = "qr",
    ) -> ScanOutcome:
        now = now or utcnow()

        # foreign and malformed payloads are rejected before any query
        _, member_id = validate_payload(payload, gym_id)
        member = self.resolve_member(gym_id, member_id)

        reason = state.denial_reason(member, now)
        if reason is not None:
            record = self._record(gym_id, member, verified_by, now, granted=False, reason=reason, method=method)
            alert = self._raise_alert(gym_id, member, reason, now)
            self._publish(ACCESS_DENIED_EVENT, {
                "alert": {
                    **alert.to_dict(),
                    "timestamp": iso(alert.created_at),
                },
            })
            logger.info("Access denied for %s in %s: %s", member.member_id, gym_id, reason)
            return ScanOutcome(False, member, record, denial_reason=reason, alert=alert)

        recent = self.recent_grant(gym_id, member, now)
        if recent is not None:
            logger.info("Duplicate scan for %s in %s within %s minutes", member.member_id, gym_id, self.window_minutes)
            return ScanOutcome(True, member, recent, skipped_duplicate=True)

        record = self._record(gym_id, member, verified_by, now, granted=True, method=method)
        self._publish(CHECK_IN_EVENT, {
            "member": {
                "id": str(member.id),
                "memberId": member.member_id,
                "name": member.name,
            },
            "timestamp": iso(record.check_in_time),
        })
        logger.info("Check-in granted for %s in %s", member.member_id, gym_id)
        return ScanOutcome(True, member, record)
