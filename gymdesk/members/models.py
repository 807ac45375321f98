# gymdesk/members/models.py
from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    JSON,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from gymdesk.auth.db import Base, utcnow
from gymdesk.common import iso
from gymdesk.plans.models import Plan

ACTIVE = "active"
EXPIRED = "expired"
FROZEN = "frozen"
CANCELLED = "cancelled"
MEMBERSHIP_STATUSES = (ACTIVE, EXPIRED, FROZEN, CANCELLED)

PAID = "paid"
PENDING = "pending"
OVERDUE = "overdue"
FEE_STATUSES = (PAID, PENDING, OVERDUE)


class Member(Base):
    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint("gym_id", "member_id", name="uq_member_gym_member_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    gym_id = Column(String, nullable=False, index=True)
    member_id = Column(String, nullable=False)          # human readable, unique per gym

    # personal info
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=False)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String, nullable=True)
    address = Column(String, nullable=True)
    photo = Column(String, nullable=True)

    emergency_contact = Column(JSON, nullable=False, default=dict)
    notes = Column(Text, nullable=True)

    # embedded membership
    membership_plan_id = Column(Uuid(as_uuid=True), ForeignKey("plans.id"), nullable=False)
    membership_start_date = Column(DateTime, nullable=False, default=utcnow)
    membership_end_date = Column(DateTime, nullable=False)
    membership_status = Column(String, nullable=False, default=ACTIVE, index=True)

    # mirror of membership_end_date; only gymdesk.members.state writes either
    expiry_date = Column(DateTime, nullable=True)

    fee_status = Column(String, nullable=False, default=PAID, index=True)
    last_payment_date = Column(DateTime, nullable=True)
    next_payment_due = Column(DateTime, nullable=True)

    # permanent payload, never regenerated
    qr_data = Column(Text, nullable=False)
    qr_code = Column(Text, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Uuid(as_uuid=True), nullable=False)
    updated_by = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    plan = relationship(Plan, lazy="joined")

    def summary(self) -> dict:
        return {
            "id": str(self.id),
            "memberId": self.member_id,
            "name": self.name,
            "phone": self.phone,
        }

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "memberId": self.member_id,
            "personalInfo": {
                "name": self.name,
                "email": self.email,
                "phone": self.phone,
                "dateOfBirth": self.date_of_birth.isoformat() if self.date_of_birth else None,
                "gender": self.gender,
                "address": self.address,
                "photo": self.photo,
            },
            "membership": {
                "plan": self.plan.to_dict() if self.plan is not None else str(self.membership_plan_id),
                "startDate": iso(self.membership_start_date),
                "endDate": iso(self.membership_end_date),
                "status": self.membership_status,
            },
            "expiryDate": iso(self.expiry_date),
            "feeStatus": self.fee_status,
            "lastPaymentDate": iso(self.last_payment_date),
            "nextPaymentDue": iso(self.next_payment_due),
            "qrData": self.qr_data,
            "qrCode": self.qr_code,
            "emergencyContact": dict(self.emergency_contact or {}),
            "notes": self.notes,
            "isActive": self.is_active,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }
