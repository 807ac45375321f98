# gymdesk/audit/models.py
import uuid

from sqlalchemy import Column, DateTime, JSON, String, Uuid

from gymdesk.auth.db import Base, utcnow


class AuditEntry(Base):
    __tablename__ = "audit_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    action = Column(String, nullable=False, index=True)      # gym_created, login, ...
    resource = Column(String, nullable=False, index=True)    # gym | user | auth | system
    resource_id = Column(String, nullable=True)
    details = Column(JSON, nullable=False, default=dict)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    expires_at = Column(DateTime, nullable=True, index=True)
