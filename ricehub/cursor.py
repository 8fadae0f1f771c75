"""
Pagination cursor codec for the rice feed.

The cursor travels as three independent, optional query parameters
(``lastId``, ``lastCreatedAt``, ``lastDownloads``). The server never emits a
cursor: clients read ``id``, ``createdAt`` and ``downloadCount`` off the last
row of a page and send them back verbatim to fetch the next one.

Decoding happens once, at the request boundary, and produces either
``FIRST_PAGE`` (every field absent) or a ``Continuation`` carrying whichever
fields were supplied. Partial continuations are passed through untouched; a
missing field behaves as its zero value for the sort modes that read it.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from ricehub.errors import InvalidCursor

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"
_TIMESTAMP_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{6}[+-]\d{2}:\d{2}$"
)
_DOWNLOADS_PATTERN = re.compile(r"^\d+$")

# Zero values used when a continuation omits a field.
NIL_ID = uuid.UUID(int=0)
ZERO_CREATED_AT = datetime(1, 1, 1, tzinfo=timezone.utc)
ZERO_DOWNLOADS = 0


@dataclass(frozen=True)
class FirstPage:
    """No cursor supplied: the query runs with open-ended bounds."""


@dataclass(frozen=True)
class Continuation:
    last_id: Optional[uuid.UUID] = None
    last_created_at: Optional[datetime] = None
    last_downloads: Optional[int] = None

    @property
    def id_or_zero(self) -> uuid.UUID:
        return self.last_id if self.last_id is not None else NIL_ID

    @property
    def created_at_or_zero(self) -> datetime:
        if self.last_created_at is None:
            return ZERO_CREATED_AT
        return self.last_created_at

    @property
    def downloads_or_zero(self) -> int:
        if self.last_downloads is None:
            return ZERO_DOWNLOADS
        return self.last_downloads


Cursor = Union[FirstPage, Continuation]

FIRST_PAGE = FirstPage()


def format_timestamp(value: datetime) -> str:
    """Render a timestamp in the exact form ``parse_timestamp`` accepts."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    # A literal "+" decodes to a space when the client forgets to escape it.
    value = value.strip().replace(" ", "+")
    if not _TIMESTAMP_PATTERN.match(value):
        raise ValueError(f"timestamp does not match {TIMESTAMP_FORMAT}: {value!r}")
    return datetime.strptime(value, TIMESTAMP_FORMAT).astimezone(timezone.utc)


def parse_id(value: str) -> uuid.UUID:
    return uuid.UUID(value.strip())


def parse_downloads(value: str) -> int:
    value = value.strip()
    if not _DOWNLOADS_PATTERN.match(value):
        raise ValueError(f"downloads must be a non-negative integer: {value!r}")
    return int(value)


def _present(value: Optional[str]) -> bool:
    return value is not None and value != ""


def decode_cursor(
    last_id: Optional[str] = None,
    last_created_at: Optional[str] = None,
    last_downloads: Optional[str] = None,
) -> Cursor:
    """
    Decode the raw query-string values into a cursor.

    Raises InvalidCursor for the first present field that fails to parse.
    """
    if not (
        _present(last_id) or _present(last_created_at) or _present(last_downloads)
    ):
        return FIRST_PAGE

    parsed_id = None
    parsed_created_at = None
    parsed_downloads = None

    if _present(last_id):
        try:
            parsed_id = parse_id(last_id)
        except ValueError as exc:
            raise InvalidCursor("Failed to parse last id") from exc

    if _present(last_created_at):
        try:
            parsed_created_at = parse_timestamp(last_created_at)
        except ValueError as exc:
            raise InvalidCursor("Failed to parse last created timestamp") from exc

    if _present(last_downloads):
        try:
            parsed_downloads = parse_downloads(last_downloads)
        except ValueError as exc:
            raise InvalidCursor(
                "Failed to parse last downloads query parameter"
            ) from exc

    return Continuation(
        last_id=parsed_id,
        last_created_at=parsed_created_at,
        last_downloads=parsed_downloads,
    )
