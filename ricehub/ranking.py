"""
Feed ranking and keyset query construction.

Each sort mode is described by a ``RankStrategy``: the ORDER BY terms that
give a total order (primary key descending, rice id descending) and the keyset
predicate applied to a continuation cursor.

trending and mostStars rank on a star count computed at query time, so their
cursor can only be positional (``id < lastId``). A score change between two
page fetches can move a row across the page boundary, which skips or repeats
it. Materializing the score would fix that; until then it is a known
approximation.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, NamedTuple, Optional

from sqlalchemy import Boolean, Float, func, literal, select, tuple_
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.functions import FunctionElement
from sqlalchemy.sql.selectable import Select

from ricehub.cursor import Continuation, Cursor, FirstPage
from ricehub.errors import InvalidSortMode
from ricehub.tables import (
    RiceDotfilesRow,
    RicePreviewRow,
    RiceRow,
    RiceStarRow,
    UserRow,
)

PAGE_SIZE = 20

TRENDING_GRAVITY = 1.5
TRENDING_AGE_OFFSET_HOURS = 2


class SortMode(str, Enum):
    TRENDING = "trending"
    RECENT = "recent"
    MOST_DOWNLOADS = "mostDownloads"
    MOST_STARS = "mostStars"


DEFAULT_SORT_MODE = SortMode.TRENDING


def parse_sort_mode(value: Optional[str]) -> SortMode:
    if value is None:
        return DEFAULT_SORT_MODE
    try:
        return SortMode(value)
    except ValueError as exc:
        raise InvalidSortMode() from exc


class hours_since(FunctionElement):
    """Hours elapsed between a timestamp column and now."""

    type = Float()
    name = "hours_since"
    inherit_cache = True


@compiles(hours_since)
def _compile_hours_since(element, compiler, **kw):
    return "(extract(epoch from (current_timestamp - %s)) / 3600)" % (
        compiler.process(element.clauses, **kw)
    )


@compiles(hours_since, "sqlite")
def _compile_hours_since_sqlite(element, compiler, **kw):
    return "((julianday('now') - julianday(%s)) * 24)" % (
        compiler.process(element.clauses, **kw)
    )


class FeedColumns(NamedTuple):
    rice_id: ColumnElement
    created_at: ColumnElement
    downloads: ColumnElement
    star_count: ColumnElement


@dataclass(frozen=True)
class RankStrategy:
    order_by: Callable[[FeedColumns], tuple]
    keyset: Callable[[FeedColumns, Continuation], Optional[ColumnElement]]


def trending_score(cols: FeedColumns) -> ColumnElement:
    age = hours_since(cols.created_at) + TRENDING_AGE_OFFSET_HOURS
    return (cols.downloads + cols.star_count) / func.power(
        age, TRENDING_GRAVITY, type_=Float
    )


def _id_keyset(cols: FeedColumns, cursor: Continuation) -> Optional[ColumnElement]:
    if cursor.last_id is None:
        return None
    return cols.rice_id < literal(cursor.last_id, RiceRow.id.type)


def _recent_keyset(cols: FeedColumns, cursor: Continuation) -> ColumnElement:
    created_at = cursor.created_at_or_zero.astimezone(timezone.utc)
    return tuple_(cols.created_at, cols.rice_id) < tuple_(
        literal(created_at, RiceRow.created_at.type),
        literal(cursor.id_or_zero, RiceRow.id.type),
    )


def _downloads_keyset(cols: FeedColumns, cursor: Continuation) -> ColumnElement:
    return tuple_(cols.downloads, cols.rice_id) < tuple_(
        literal(cursor.downloads_or_zero, RiceDotfilesRow.download_count.type),
        literal(cursor.id_or_zero, RiceRow.id.type),
    )


STRATEGIES: dict[SortMode, RankStrategy] = {
    SortMode.TRENDING: RankStrategy(
        order_by=lambda c: (trending_score(c).desc(), c.rice_id.desc()),
        keyset=_id_keyset,
    ),
    SortMode.RECENT: RankStrategy(
        order_by=lambda c: (c.created_at.desc(), c.rice_id.desc()),
        keyset=_recent_keyset,
    ),
    SortMode.MOST_DOWNLOADS: RankStrategy(
        order_by=lambda c: (c.downloads.desc(), c.rice_id.desc()),
        keyset=_downloads_keyset,
    ),
    SortMode.MOST_STARS: RankStrategy(
        order_by=lambda c: (c.star_count.desc(), c.rice_id.desc()),
        keyset=_id_keyset,
    ),
}

# Order matters: PartialRice.from_row and the tests read this list.
FEED_COLUMNS = (
    "id",
    "title",
    "slug",
    "created_at",
    "author_display_name",
    "author_username",
    "thumbnail",
    "star_count",
    "download_count",
    "is_starred",
)


def _partial_rice_select(
    viewer_id: Optional[uuid.UUID],
) -> tuple[Select, FeedColumns]:
    """The PartialRice projection shared by every list of rices."""
    star_count = (
        select(func.count(RiceStarRow.user_id))
        .where(RiceStarRow.rice_id == RiceRow.id)
        .correlate(RiceRow)
        .scalar_subquery()
    )
    thumbnail = (
        select(RicePreviewRow.file_path)
        .where(RicePreviewRow.rice_id == RiceRow.id)
        .order_by(RicePreviewRow.created_at.asc(), RicePreviewRow.id.asc())
        .limit(1)
        .correlate(RiceRow)
        .scalar_subquery()
    )
    has_preview = (
        select(RicePreviewRow.id)
        .where(RicePreviewRow.rice_id == RiceRow.id)
        .correlate(RiceRow)
        .exists()
    )

    if viewer_id is None:
        is_starred = literal(False, Boolean)
    else:
        is_starred = (
            select(RiceStarRow.user_id)
            .where(
                RiceStarRow.rice_id == RiceRow.id,
                RiceStarRow.user_id == viewer_id,
            )
            .correlate(RiceRow)
            .exists()
        )

    cols = FeedColumns(
        rice_id=RiceRow.id,
        created_at=RiceRow.created_at,
        downloads=RiceDotfilesRow.download_count,
        star_count=star_count,
    )

    stmt = (
        select(
            RiceRow.id.label("id"),
            RiceRow.title.label("title"),
            RiceRow.slug.label("slug"),
            RiceRow.created_at.label("created_at"),
            UserRow.display_name.label("author_display_name"),
            UserRow.username.label("author_username"),
            thumbnail.label("thumbnail"),
            star_count.label("star_count"),
            RiceDotfilesRow.download_count.label("download_count"),
            is_starred.label("is_starred"),
        )
        .select_from(RiceRow)
        .join(UserRow, UserRow.id == RiceRow.author_id)
        .join(RiceDotfilesRow, RiceDotfilesRow.rice_id == RiceRow.id)
        .where(has_preview)
    )
    return stmt, cols


def build_feed_query(
    sort_mode: SortMode,
    cursor: Cursor,
    viewer_id: Optional[uuid.UUID] = None,
    *,
    page_size: int = PAGE_SIZE,
) -> Select:
    """Build the page query for ``sort_mode`` starting after ``cursor``."""
    strategy = STRATEGIES[sort_mode]
    stmt, cols = _partial_rice_select(viewer_id)

    if isinstance(cursor, Continuation):
        predicate = strategy.keyset(cols, cursor)
        if predicate is not None:
            stmt = stmt.where(predicate)
    elif not isinstance(cursor, FirstPage):
        raise TypeError(f"unsupported cursor: {cursor!r}")

    return stmt.order_by(*strategy.order_by(cols)).limit(page_size)


def build_user_rices_query(
    author_id: uuid.UUID, viewer_id: Optional[uuid.UUID] = None
) -> Select:
    stmt, cols = _partial_rice_select(viewer_id)
    order_by = STRATEGIES[SortMode.RECENT].order_by(cols)
    return stmt.where(RiceRow.author_id == author_id).order_by(*order_by)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class PartialRice:
    id: uuid.UUID
    title: str
    slug: str
    created_at: datetime
    author_display_name: str
    author_username: str
    thumbnail: str
    star_count: int
    download_count: int
    is_starred: bool

    @classmethod
    def from_row(cls, row) -> "PartialRice":
        m = row._mapping
        rice_id = m["id"]
        if not isinstance(rice_id, uuid.UUID):
            rice_id = uuid.UUID(str(rice_id))
        return cls(
            id=rice_id,
            title=m["title"],
            slug=m["slug"],
            created_at=_as_utc(m["created_at"]),
            author_display_name=m["author_display_name"],
            author_username=m["author_username"],
            thumbnail=m["thumbnail"],
            star_count=int(m["star_count"] or 0),
            download_count=int(m["download_count"] or 0),
            is_starred=bool(m["is_starred"]),
        )
