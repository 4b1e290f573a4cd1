"""
Opaque pagination cursors.

A cursor is ``<iso-8601 timestamp>_<id>``. ISO-8601 timestamps never
contain ``_``, so decoding splits on the first separator and ids are free
to contain underscores.

Decoding only checks the shape of the cursor. A well-formed cursor that
points at no existing row is not an error: it yields an empty or shifted
page, so pagination never reveals whether a row exists.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import NamedTuple

from chat_api.core.errors import InvalidCursorFormat, InvalidCursorTimestamp

SEPARATOR = "_"


class CursorPosition(NamedTuple):
    created_at: datetime
    id: str


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def encode_cursor(created_at: datetime, item_id: str) -> str:
    return f"{_as_naive_utc(created_at).isoformat()}{SEPARATOR}{item_id}"


def decode_cursor(cursor: str) -> CursorPosition:
    """
    Parse a cursor produced by ``encode_cursor``.

    Raises:
        InvalidCursorFormat: separator missing or an empty part
        InvalidCursorTimestamp: timestamp part is not a valid instant
    """
    timestamp_part, sep, id_part = cursor.partition(SEPARATOR)
    if not sep or not timestamp_part or not id_part:
        raise InvalidCursorFormat("Invalid cursor format")

    # offsets at the edges of the datetime range parse but overflow when shifted to UTC
    try:
        created_at = _as_naive_utc(datetime.fromisoformat(timestamp_part))
    except (ValueError, OverflowError):
        raise InvalidCursorTimestamp("Invalid cursor timestamp") from None

    return CursorPosition(created_at, id_part)
