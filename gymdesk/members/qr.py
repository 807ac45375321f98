# gymdesk/members/qr.py
"""
Permanent QR payload: a JSON object with exactly ``gymId`` and ``memberId``.

There is no signature; a scan is trusted because the scanning user is
authenticated inside the gym the payload names.
"""
from __future__ import annotations

import base64
import io
import json
from typing import Tuple

import qrcode

from gymdesk.errors import ForeignCredential, MalformedCredential

_FIELDS = {"gymId", "memberId"}


def encode_payload(gym_id: str, member_id: str) -> str:
    return json.dumps({"gymId": gym_id, "memberId": member_id})


def decode_payload(raw: str) -> Tuple[str, str]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        raise MalformedCredential("Invalid QR code data")

    if not isinstance(data, dict) or set(data) != _FIELDS:
        raise MalformedCredential()
    gym_id, member_id = data["gymId"], data["memberId"]
    if not isinstance(gym_id, str) or not isinstance(member_id, str) or not gym_id or not member_id:
        raise MalformedCredential()
    return gym_id, member_id


def validate_payload(raw: str, expected_gym_id: str) -> Tuple[str, str]:
    gym_id, member_id = decode_payload(raw)
    if gym_id != expected_gym_id:
        raise ForeignCredential()
    return gym_id, member_id


def render_png_data_url(payload: str, box_size: int = 10, border: int = 1) -> str:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=box_size,
        border=border,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")
