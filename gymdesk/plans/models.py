# gymdesk/plans/models.py
import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, JSON, String, Text, Uuid

from gymdesk.auth.db import Base, utcnow

DAYS = "days"
MONTHS = "months"
YEARS = "years"
DURATION_UNITS = (DAYS, MONTHS, YEARS)

# fixed multipliers, not calendar arithmetic: a month plan adds exactly 30 days
_UNIT_DAYS = {DAYS: 1, MONTHS: 30, YEARS: 365}


def duration_in_days(value: int, unit: str) -> int:
    return int(value) * _UNIT_DAYS.get(unit, 1)


class Plan(Base):
    __tablename__ = "plans"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    gym_id = Column(String, nullable=False, index=True)
    # unique among active plans of a gym, checked in the router
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    duration_value = Column(Integer, nullable=False)
    duration_unit = Column(String, nullable=False, default=MONTHS)
    price = Column(Float, nullable=False)
    features = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def duration_days(self) -> int:
        return duration_in_days(self.duration_value, self.duration_unit)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "duration": {"value": self.duration_value, "unit": self.duration_unit},
            "durationInDays": self.duration_days,
            "price": self.price,
            "features": list(self.features or []),
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() + "Z" if self.created_at else None,
        }
