# gymdesk/auth/utils_ids.py
import secrets
import time

_B36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _B36[r] + out
    return out or "0"


def new_gym_id() -> str:
    """GYM + 9 uppercase hex chars. Callers retry on collision."""
    return "GYM" + secrets.token_hex(6).upper()[:9]


def new_member_id() -> str:
    """MEM + base36 millisecond timestamp + 6 hex chars, unique per gym in practice."""
    return f"MEM{_base36(int(time.time() * 1000))}{secrets.token_hex(3).upper()}"
