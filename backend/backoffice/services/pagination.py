# Overview: Shared list pagination for service-layer queries.

from __future__ import annotations

from typing import Callable


DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


def paginate(query, *, page: int | None, per_page: int | None, serialize: Callable) -> dict:
    """
    Run `query` and serialize its rows.

    page=None returns every row. Otherwise returns one page plus pagination
    metadata (per_page defaults to 20, capped at 100).
    """
    if page is None:
        rows = query.all()
        return {
            "items": [serialize(row) for row in rows],
            "count": len(rows),
        }

    per_page = min(per_page or DEFAULT_PER_PAGE, MAX_PER_PAGE)  # Default 20, max 100
    page = max(page, 1)  # Ensure page >= 1

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
