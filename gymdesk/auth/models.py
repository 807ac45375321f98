# gymdesk/auth/models.py
import uuid

from sqlalchemy import Column, String, Boolean, DateTime, JSON, Text, Uuid

from gymdesk.auth.db import Base, utcnow
from gymdesk.auth.permissions import STAFF


class Gym(Base):
    __tablename__ = "gyms"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # tenant identifier, generated once and never reassigned
    gym_id = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    address = Column(JSON, nullable=False, default=dict)
    contact = Column(JSON, nullable=False, default=dict)
    settings = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_by = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # no FK: a hard-deleted gym leaves its users in place
    gym_id = Column(String, nullable=True, index=True)
    email = Column(String, nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, default=STAFF)
    is_active = Column(Boolean, nullable=False, default=True)
    refresh_token = Column(Text, nullable=True)
    last_login = Column(DateTime, nullable=True)
    created_by = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
