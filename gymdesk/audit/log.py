# gymdesk/audit/log.py
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from gymdesk import config
from gymdesk.audit.models import AuditEntry
from gymdesk.auth.db import utcnow
from gymdesk.auth.models import User

logger = logging.getLogger(__name__)


def client_ip(request: Optional[Request]) -> str:
    if request is None:
        return "unknown"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")


def write_audit(
    db: Session,
    user: Optional[User],
    action: str,
    resource: str,
    resource_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> None:
    """
    Append an audit entry. Must be called after the primary change is committed:
    a failure here is logged and rolled back, never raised.
    """
    if user is None:
        return
    now = utcnow()
    try:
        db.add(
            AuditEntry(
                user_id=user.id,
                action=action,
                resource=resource,
                resource_id=resource_id,
                details=details or {},
                ip_address=client_ip(request),
                user_agent=request.headers.get("user-agent", "unknown") if request else "unknown",
                created_at=now,
                expires_at=now + timedelta(days=config.AUDIT_RETENTION_DAYS),
            )
        )
        db.commit()
    except Exception:
        logger.exception("Error creating audit log for %s on %s %s", action, resource, resource_id)
        db.rollback()
