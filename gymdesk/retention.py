# gymdesk/retention.py
"""Deletes attendance, alert and audit rows whose ``expires_at`` has passed."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import delete
from sqlalchemy.orm import Session

from gymdesk.attendance.models import Alert, Attendance
from gymdesk.audit.models import AuditEntry
from gymdesk.auth.db import utcnow

logger = logging.getLogger(__name__)

_EXPIRING = (("attendance", Attendance), ("alerts", Alert), ("audit_logs", AuditEntry))


def sweep_expired(db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or utcnow()
    removed: Dict[str, int] = {}
    for name, model in _EXPIRING:
        result = db.execute(
            delete(model).where(model.expires_at.is_not(None), model.expires_at < now)
        )
        removed[name] = result.rowcount or 0
    db.commit()
    if any(removed.values()):
        logger.info("Retention sweep removed %s", removed)
    return removed
