# gymdesk/plans/router.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from gymdesk.auth.db import get_db
from gymdesk.auth.deps import TenantContext, tenant_scope
from gymdesk.auth.permissions import GYM_OWNER, STAFF
from gymdesk.common import ok
from gymdesk.errors import DuplicatePlanName, NotFound
from gymdesk.plans.models import DURATION_UNITS, MONTHS, Plan

router = APIRouter(prefix="/plans", tags=["plans"])

managers = tenant_scope(GYM_OWNER, STAFF)
anyone = tenant_scope()

_UNIT_PATTERN = "^(" + "|".join(DURATION_UNITS) + ")$"


class Duration(BaseModel):
    value: int = Field(..., ge=1)
    unit: str = Field(MONTHS, pattern=_UNIT_PATTERN)


class PlanCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    duration: Duration
    price: float = Field(..., ge=0)
    features: List[str] = Field(default_factory=list)


class PlanUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    duration: Optional[Duration] = None
    price: Optional[float] = Field(None, ge=0)
    features: Optional[List[str]] = None
    isActive: Optional[bool] = None


def _load(db: Session, gym_id: str, plan_pk: str) -> Plan:
    try:
        pk = uuid.UUID(plan_pk)
    except ValueError:
        raise NotFound("Membership plan not found")
    plan = db.query(Plan).filter(Plan.gym_id == gym_id, Plan.id == pk).first()
    if plan is None:
        raise NotFound("Membership plan not found")
    return plan


def _name_taken(db: Session, gym_id: str, name: str, exclude: Optional[uuid.UUID] = None) -> bool:
    q = db.query(Plan.id).filter(
        Plan.gym_id == gym_id,
        func.lower(Plan.name) == name.strip().lower(),
        Plan.is_active.is_(True),
    )
    if exclude is not None:
        q = q.filter(Plan.id != exclude)
    return q.first() is not None


@router.post("", status_code=201)
def create_plan(body: PlanCreate, ctx: TenantContext = Depends(managers), db: Session = Depends(get_db)):
    if _name_taken(db, ctx.gym_id, body.name):
        raise DuplicatePlanName()
    plan = Plan(
        gym_id=ctx.gym_id,
        name=body.name.strip(),
        description=body.description,
        duration_value=body.duration.value,
        duration_unit=body.duration.unit,
        price=body.price,
        features=body.features,
        created_by=ctx.user.id,
    )
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return ok("Membership plan created successfully", {"plan": plan.to_dict()})


@router.get("")
def list_plans(
    isActive: Optional[bool] = None,
    ctx: TenantContext = Depends(anyone),
    db: Session = Depends(get_db),
):
    q = db.query(Plan).filter(Plan.gym_id == ctx.gym_id)
    if isActive is not None:
        q = q.filter(Plan.is_active == isActive)
    plans = q.order_by(Plan.price.asc()).all()
    return ok("Membership plans retrieved successfully", {"plans": [p.to_dict() for p in plans]})


@router.get("/{id}")
def get_plan(id: str = Path(...), ctx: TenantContext = Depends(anyone), db: Session = Depends(get_db)):
    return ok("Membership plan retrieved successfully", {"plan": _load(db, ctx.gym_id, id).to_dict()})


@router.put("/{id}")
def update_plan(
    body: PlanUpdate,
    id: str = Path(...),
    ctx: TenantContext = Depends(managers),
    db: Session = Depends(get_db),
):
    plan = _load(db, ctx.gym_id, id)
    new_name = body.name.strip() if body.name is not None else plan.name
    renamed = new_name.lower() != plan.name.lower()
    reactivated = body.isActive is True and not plan.is_active
    stays_active = body.isActive if body.isActive is not None else plan.is_active
    if stays_active and (renamed or reactivated) and _name_taken(db, ctx.gym_id, new_name, exclude=plan.id):
        raise DuplicatePlanName()
    plan.name = new_name
    if body.description is not None:
        plan.description = body.description
    if body.duration is not None:
        # existing memberships keep their dates; only new starts and renewals use it
        plan.duration_value = body.duration.value
        plan.duration_unit = body.duration.unit
    if body.price is not None:
        plan.price = body.price
    if body.features is not None:
        plan.features = body.features
    if body.isActive is not None:
        plan.is_active = body.isActive
    db.commit()
    db.refresh(plan)
    return ok("Membership plan updated successfully", {"plan": plan.to_dict()})


@router.delete("/{id}")
def delete_plan(id: str = Path(...), ctx: TenantContext = Depends(managers), db: Session = Depends(get_db)):
    plan = _load(db, ctx.gym_id, id)
    plan.is_active = False
    db.commit()
    return ok("Membership plan deleted successfully")
