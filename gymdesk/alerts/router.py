# gymdesk/alerts/router.py
"""Alert inbox for owners and staff. Alerts are shared per gym and role, not per user."""
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from gymdesk.attendance.models import Alert
from gymdesk.auth.db import get_db, utcnow
from gymdesk.auth.deps import TenantContext, tenant_scope
from gymdesk.auth.permissions import VIEW_ALERTS
from gymdesk.common import iso, ok, paginate
from gymdesk.errors import NotFound

router = APIRouter(prefix="/alerts", tags=["alerts"])

inbox = tenant_scope(permission=VIEW_ALERTS)


def _visible(db: Session, ctx: TenantContext):
    return db.query(Alert).filter(
        Alert.gym_id == ctx.gym_id,
        Alert.target_roles.like(Alert.role_pattern(ctx.role)),
    )


def _load(db: Session, ctx: TenantContext, alert_pk: str) -> Alert:
    try:
        pk = uuid.UUID(alert_pk)
    except ValueError:
        raise NotFound("Alert not found")
    alert = db.query(Alert).filter(Alert.gym_id == ctx.gym_id, Alert.id == pk).first()
    if alert is None:
        raise NotFound("Alert not found")
    return alert


def _read_entry(ctx: TenantContext) -> dict:
    return {"user": str(ctx.user.id), "readAt": iso(utcnow())}


@router.get("")
def list_alerts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    isRead: Optional[bool] = None,
    type: Optional[str] = None,
    priority: Optional[str] = None,
    ctx: TenantContext = Depends(inbox),
    db: Session = Depends(get_db),
):
    q = _visible(db, ctx)
    if isRead is not None:
        q = q.filter(Alert.is_read == isRead)
    if type:
        q = q.filter(Alert.type == type)
    if priority:
        q = q.filter(Alert.priority == priority)

    total = q.count()
    pagination = paginate(page, limit, total)
    alerts = q.order_by(Alert.created_at.desc()).offset(pagination["skip"]).limit(limit).all()
    return ok("Alerts retrieved successfully", {
        "alerts": [a.to_dict() for a in alerts],
        "pagination": pagination,
    })


@router.get("/unread-count")
def unread_count(ctx: TenantContext = Depends(inbox), db: Session = Depends(get_db)):
    count = _visible(db, ctx).filter(Alert.is_read.is_(False)).count()
    return ok("Unread count retrieved successfully", {"count": count})


@router.patch("/read-all")
def mark_all_read(ctx: TenantContext = Depends(inbox), db: Session = Depends(get_db)):
    alerts = _visible(db, ctx).filter(Alert.is_read.is_(False)).all()
    for alert in alerts:
        # reassigned so the JSON column registers the change
        alert.read_by = list(alert.read_by or []) + [_read_entry(ctx)]
        alert.is_read = True
    db.commit()
    return ok("All alerts marked as read", {"updated": len(alerts)})


@router.patch("/{id}/read")
def mark_read(id: str = Path(...), ctx: TenantContext = Depends(inbox), db: Session = Depends(get_db)):
    alert = _load(db, ctx, id)
    reader = str(ctx.user.id)
    if not any(entry.get("user") == reader for entry in alert.read_by or []):
        alert.read_by = list(alert.read_by or []) + [_read_entry(ctx)]
        alert.is_read = True
        db.commit()
        db.refresh(alert)
    return ok("Alert marked as read", {"alert": alert.to_dict()})


@router.delete("/{id}")
def delete_alert(id: str = Path(...), ctx: TenantContext = Depends(inbox), db: Session = Depends(get_db)):
    alert = _load(db, ctx, id)
    db.delete(alert)
    db.commit()
    return ok("Alert deleted successfully")
