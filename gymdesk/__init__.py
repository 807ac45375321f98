# gymdesk/__init__.py
from .members.state import can_access, denial_reason, renew
from .members.qr import decode_payload, encode_payload


__all__ = ["can_access", "denial_reason", "renew", "encode_payload", "decode_payload"]
