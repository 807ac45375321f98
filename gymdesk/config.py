# gymdesk/config.py
import logging
import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./gymdesk.db")

JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME_FOR_PROD")
JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", "CHANGE_ME_REFRESH_FOR_PROD")
JWT_ISSUER = os.getenv("JWT_ISSUER", "gymdesk")
ACCESS_TTL = int(os.getenv("ACCESS_TTL_SECONDS", "1800"))       # 30 minutes default
REFRESH_TTL = int(os.getenv("REFRESH_TTL_SECONDS", "604800"))   # 7 days default

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

DUPLICATE_SCAN_WINDOW_MINUTES = int(os.getenv("DUPLICATE_SCAN_WINDOW_MINUTES", "5") or 5)

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
REFRESH_COOKIE_NAME = "refresh_token"

REDIS_URL = os.getenv("REDIS_URL", "")
REDIS_CHANNEL_PREFIX = os.getenv("REDIS_CHANNEL_PREFIX", "gymdesk:events")

ALERT_RETENTION_DAYS = int(os.getenv("ALERT_RETENTION_DAYS", "30"))
ATTENDANCE_RETENTION_DAYS = int(os.getenv("ATTENDANCE_RETENTION_DAYS", "60"))
AUDIT_RETENTION_DAYS = int(os.getenv("AUDIT_RETENTION_DAYS", "365"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]


def is_production() -> bool:
    return ENVIRONMENT.lower() == "production"


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
