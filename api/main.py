from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gymdesk import config
from gymdesk.errors import register_exception_handlers
from gymdesk.auth.db import Base, SessionLocal, engine
from gymdesk.auth.auth_router import router as auth_router
from gymdesk.gyms.router import router as gyms_router
from gymdesk.members.router import router as members_router
from gymdesk.plans.router import router as plans_router
from gymdesk.attendance.router import router as attendance_router
from gymdesk.alerts.router import router as alerts_router
from gymdesk.users.router import router as users_router
from gymdesk.realtime.router import router as realtime_router
from gymdesk.realtime.bus import init_realtime, shutdown_realtime
from gymdesk.retention import sweep_expired

# models register their tables on Base when imported
from gymdesk.auth.models import Gym, User  # noqa: F401
from gymdesk.audit.models import AuditEntry  # noqa: F401
from gymdesk.plans.models import Plan  # noqa: F401
from gymdesk.members.models import Member  # noqa: F401
from gymdesk.attendance.models import Alert, Attendance  # noqa: F401

logger = logging.getLogger(__name__)


def _run_retention_sweep() -> None:
    db = SessionLocal()
    try:
        sweep_expired(db)
    except Exception:
        logger.exception("Retention sweep failed")
        db.rollback()
    finally:
        db.close()


# =========================
# FastAPI Application
# =========================
def create_app() -> FastAPI:
    config.configure_logging()

    app = FastAPI(
        title="GymDesk API",
        version="0.1.0",
        docs_url="/api-docs",
        redoc_url=None,
    )

    Base.metadata.create_all(bind=engine)
    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(gyms_router)
    app.include_router(members_router)
    app.include_router(plans_router)
    app.include_router(attendance_router)
    app.include_router(alerts_router)
    app.include_router(users_router)
    app.include_router(realtime_router)

    @app.on_event("startup")
    async def _startup():
        init_realtime()
        _run_retention_sweep()
        logger.info("GymDesk API started (%s)", config.ENVIRONMENT)

    @app.on_event("shutdown")
    async def _shutdown():
        shutdown_realtime()

    @app.get("/health")
    def health():
        return {"success": True, "message": "Server is running", "environment": config.ENVIRONMENT}

    return app


app = create_app()
