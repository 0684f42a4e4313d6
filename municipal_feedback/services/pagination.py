from typing import Callable, Optional

from sqlalchemy.orm import Query

from ..config import settings


def paginate(query: Query, page: Optional[int], limit: Optional[int], serialize: Callable) -> dict:
    """Run ``query`` for one page and wrap it as ``{"data": [...], "pagination": {...}}``."""
    limit = min(max(1, limit or settings.default_page_size), settings.max_page_size)
    page = max(1, page or 1)
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "data": [serialize(r) for r in rows],
        "pagination": {
            "total": total,
            "pages": (total + limit - 1) // limit,
            "page": page,
            "limit": limit,
        },
    }
