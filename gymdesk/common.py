# gymdesk/common.py
from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, Optional


def ok(message: str, data: Any = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return body


def iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + "Z" if value else None


def paginate(page: int, limit: int, total: int) -> Dict[str, Any]:
    page = max(1, int(page))
    limit = max(1, int(limit))
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "currentPage": page,
        "itemsPerPage": limit,
        "totalPages": total_pages,
        "totalItems": total,
        "skip": (page - 1) * limit,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }
