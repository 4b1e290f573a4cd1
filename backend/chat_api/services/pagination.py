"""
Cursor pagination over ``(created_at, id)``.

The compound key gives a total order even when timestamps collide, and
the "strictly after the cursor" predicate means rows appended between
two requests never shift, duplicate or skip rows of later pages.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Literal, Optional

from sqlalchemy import Select, and_, or_
from sqlalchemy.orm import Session

from chat_api.services.cursor import decode_cursor, encode_cursor

SortOrder = Literal["asc", "desc"]

DEFAULT_LIMIT = 20
MIN_LIMIT = 1
MAX_LIMIT = 100


@dataclass
class CursorPage:
    items: List[Any]
    limit: int
    next_cursor: Optional[str] = None
    prev_cursor: Optional[str] = None
    has_more: bool = False

    @property
    def count(self) -> int:
        return len(self.items)


def clamp_limit(limit: int | None, default: int = DEFAULT_LIMIT, maximum: int = MAX_LIMIT) -> int:
    if limit is None:
        limit = default
    return max(MIN_LIMIT, min(limit, maximum))


def paginate(
    db: Session,
    stmt: Select,
    model: Any,
    cursor: str | None = None,
    limit: int | None = None,
    sort: SortOrder = "desc",
    max_limit: int = MAX_LIMIT,
) -> CursorPage:
    """
    Run ``stmt`` (already filtered to its scope) as one cursor page.

    ``model`` must expose ``created_at`` and ``id`` columns. A malformed
    cursor raises ``InvalidArgument``; a well-formed one that matches
    nothing just returns an empty page.
    """
    if sort not in ("asc", "desc"):
        raise ValueError(f"Unsupported sort order: {sort!r}")

    limit = clamp_limit(limit, maximum=max_limit)
    created_at, item_id = model.created_at, model.id

    if cursor:
        position = decode_cursor(cursor)
        if sort == "desc":
            stmt = stmt.where(or_(
                created_at < position.created_at,
                and_(created_at == position.created_at, item_id < position.id),
            ))
        else:
            stmt = stmt.where(or_(
                created_at > position.created_at,
                and_(created_at == position.created_at, item_id > position.id),
            ))

    if sort == "desc":
        stmt = stmt.order_by(created_at.desc(), item_id.desc())
    else:
        stmt = stmt.order_by(created_at.asc(), item_id.asc())

    # one extra row tells us whether another page exists without a COUNT
    rows = list(db.execute(stmt.limit(limit + 1)).scalars().all())
    has_more = len(rows) > limit
    items = rows[:limit]

    if not items:
        return CursorPage(items=[], limit=limit)

    return CursorPage(
        items=items,
        limit=limit,
        next_cursor=encode_cursor(items[-1].created_at, items[-1].id),
        prev_cursor=encode_cursor(items[0].created_at, items[0].id),
        has_more=has_more,
    )
