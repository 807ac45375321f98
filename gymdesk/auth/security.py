# gymdesk/auth/security.py
import time
import uuid
from typing import Dict, Any, Optional

import bcrypt
import jwt

from gymdesk import config
from gymdesk.errors import TokenExpired, TokenInvalid

ACCESS = "access"
REFRESH = "refresh"


def _to_bcrypt_secret(plain: str) -> bytes:
    # bcrypt only looks at the first 72 bytes and newer releases refuse longer input
    return plain.encode("utf-8")[:72]


def hash_password(plain: str) -> str:
    salt = bcrypt.gensalt(config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_to_bcrypt_secret(plain), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    if not plain or not hashed:
        return False
    try:
        return bcrypt.checkpw(_to_bcrypt_secret(plain), hashed.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def _secret_for(kind: str) -> str:
    return config.JWT_REFRESH_SECRET if kind == REFRESH else config.JWT_SECRET


def _jwt(payload: Dict[str, Any], ttl: int, kind: str) -> str:
    now = int(time.time())
    body = {
        "iss": config.JWT_ISSUER,
        "iat": now,
        "exp": now + ttl,
        "type": kind,
        **payload,
    }
    return jwt.encode(body, _secret_for(kind), algorithm="HS256")


def issue_access_token(*, user_id: str, gym_id: Optional[str] = None, role: Optional[str] = None) -> str:
    """
    Short-lived access token. ``gym_id`` and ``role`` are only embedded when present,
    so a superadmin token carries no tenant claim.
    """
    payload: Dict[str, Any] = {"sub": user_id}
    if gym_id:
        payload["gym_id"] = gym_id
    if role:
        payload["role"] = role
    return _jwt(payload, config.ACCESS_TTL, ACCESS)


def issue_refresh_token(*, user_id: str, gym_id: Optional[str] = None) -> str:
    """
    Long-lived refresh token. The ``jti`` makes every issued value distinct, which the
    stored-token comparison depends on when two tokens are minted within one second.
    """
    payload: Dict[str, Any] = {"sub": user_id, "jti": uuid.uuid4().hex}
    if gym_id:
        payload["gym_id"] = gym_id
    return _jwt(payload, config.REFRESH_TTL, REFRESH)


def decode_token(token: str, kind: str = ACCESS) -> Dict[str, Any]:
    """Verify signature, expiry and token kind; return the claims."""
    if not token:
        raise TokenInvalid()
    try:
        decoded = jwt.decode(
            token,
            _secret_for(kind),
            algorithms=["HS256"],
            options={"require": ["exp", "sub"], "verify_aud": False},
            issuer=config.JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.InvalidTokenError:
        raise TokenInvalid()

    if decoded.get("type") != kind:
        raise TokenInvalid()
    return decoded
