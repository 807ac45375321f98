# gymdesk/attendance/models.py
from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, JSON, String, Text, Uuid
from sqlalchemy.orm import relationship

from gymdesk.auth.db import Base, utcnow
from gymdesk.common import iso
from gymdesk.members.models import Member

MEMBERSHIP_EXPIRED = "membership_expired"
MEMBERSHIP_EXPIRING = "membership_expiring"
FEE_OVERDUE = "fee_overdue"
ACCESS_DENIED = "access_denied"
ALERT_TYPES = (MEMBERSHIP_EXPIRED, MEMBERSHIP_EXPIRING, FEE_OVERDUE, ACCESS_DENIED)

PRIORITIES = ("low", "medium", "high", "critical")


class Attendance(Base):
    """One row per scan decision, granted or denied. Never updated."""

    __tablename__ = "attendance"
    __table_args__ = (
        Index("ix_attendance_gym_member_time", "gym_id", "member_id", "check_in_time"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    gym_id = Column(String, nullable=False, index=True)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("members.id"), nullable=False)
    check_in_time = Column(DateTime, nullable=False, default=utcnow, index=True)
    method = Column(String, nullable=False, default="qr")      # qr | manual
    location = Column(String, nullable=False, default="Main Entrance")
    verified_by = Column(Uuid(as_uuid=True), nullable=True)
    access_granted = Column(Boolean, nullable=False, default=True)
    denial_reason = Column(String, nullable=True)
    expires_at = Column(DateTime, nullable=True, index=True)

    member = relationship(Member, lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "member": self.member.summary() if self.member is not None else str(self.member_id),
            "checkInTime": iso(self.check_in_time),
            "method": self.method,
            "location": self.location,
            "verifiedBy": str(self.verified_by) if self.verified_by else None,
            "accessGranted": self.access_granted,
            "denialReason": self.denial_reason,
        }


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    gym_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("members.id"), nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String, nullable=False, default="medium")
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    read_by = Column(JSON, nullable=False, default=list)        # [{"user": ..., "readAt": ...}]
    # stored as ",gymowner,staff," so a LIKE filter works on every backend
    target_roles = Column(String, nullable=False, default="")
    meta = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    expires_at = Column(DateTime, nullable=True, index=True)

    member = relationship(Member, lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "priority": self.priority,
            "isRead": self.is_read,
            "readBy": list(self.read_by or []),
            "targetRoles": self.roles,
            "member": self.member.summary() if self.member is not None else str(self.member_id),
            "metadata": dict(self.meta or {}),
            "createdAt": iso(self.created_at),
        }

    @property
    def roles(self) -> list:
        return [r for r in (self.target_roles or "").split(",") if r]

    @roles.setter
    def roles(self, values) -> None:
        self.target_roles = "," + ",".join(values) + "," if values else ""

    @staticmethod
    def role_pattern(role: str) -> str:
        return f"%,{role},%"
