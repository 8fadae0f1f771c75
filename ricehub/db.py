"""
Relational store for rices, their dotfiles, previews and stars.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from slugify import slugify
from sqlalchemy import create_engine, delete, event, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ricehub.cursor import Cursor
from ricehub.ranking import (
    PartialRice,
    SortMode,
    build_feed_query,
    build_user_rices_query,
)
from ricehub.tables import (
    Base,
    RiceDotfilesRow,
    RicePreviewRow,
    RiceRow,
    RiceStarRow,
    UserRow,
    utcnow,
)


class DuplicateRiceError(Exception):
    """Raised when a rice title or slug is already taken."""


class RiceNotFoundError(Exception):
    pass


class UserNotFoundError(Exception):
    pass


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class UserRecord:
    id: uuid.UUID
    username: str
    display_name: str
    is_admin: bool = False


@dataclass
class DotfilesRecord:
    file_path: str
    file_size: int
    download_count: int
    created_at: datetime
    updated_at: datetime


@dataclass
class PreviewRecord:
    id: uuid.UUID
    file_path: str
    created_at: datetime


@dataclass
class RiceRecord:
    id: uuid.UUID
    author_id: uuid.UUID
    title: str
    slug: str
    description: str
    created_at: datetime
    updated_at: datetime


@dataclass
class RiceDetail:
    rice: RiceRecord
    author: UserRecord
    dotfiles: DotfilesRecord
    previews: list[PreviewRecord] = field(default_factory=list)
    star_count: int = 0
    is_starred: bool = False


def _to_user(row: UserRow) -> UserRecord:
    return UserRecord(
        id=row.id,
        username=row.username,
        display_name=row.display_name,
        is_admin=row.is_admin,
    )


def _to_rice(row: RiceRow) -> RiceRecord:
    return RiceRecord(
        id=row.id,
        author_id=row.author_id,
        title=row.title,
        slug=row.slug,
        description=row.description,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _to_dotfiles(row: RiceDotfilesRow) -> DotfilesRecord:
    return DotfilesRecord(
        file_path=row.file_path,
        file_size=row.file_size,
        download_count=row.download_count,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _to_preview(row: RicePreviewRow) -> PreviewRecord:
    return PreviewRecord(
        id=row.id, file_path=row.file_path, created_at=_as_utc(row.created_at)
    )


def _enable_sqlite_extras(dbapi_connection, connection_record):
    # SQLite lacks power() on older builds and ignores foreign keys by default.
    dbapi_connection.create_function("power", 2, math.pow)
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class RiceStore:
    """
    SQLAlchemy-backed store. Accepts any SQLAlchemy URL (Postgres in
    production, SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for RiceStore")
        is_sqlite = database_url.startswith("sqlite")
        if is_sqlite and ":memory:" in database_url:
            # One shared connection so every request thread sees the same data.
            self.engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                database_url,
                pool_pre_ping=True,
                pool_recycle=1800,
            )
        if is_sqlite:
            event.listen(self.engine, "connect", _enable_sqlite_extras)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False
        )
        Base.metadata.create_all(self.engine)

    # Users are owned by the account service; this is enough to seed and join.
    def create_user(
        self, username: str, display_name: str, *, is_admin: bool = False
    ) -> UserRecord:
        with self.Session() as session:
            row = UserRow(
                id=uuid.uuid4(),
                username=username,
                display_name=display_name,
                is_admin=is_admin,
            )
            session.add(row)
            session.commit()
            return _to_user(row)

    def fetch_rices(
        self,
        sort_mode: SortMode,
        cursor: Cursor,
        viewer_id: Optional[uuid.UUID] = None,
    ) -> list[PartialRice]:
        stmt = build_feed_query(sort_mode, cursor, viewer_id)
        with self.Session() as session:
            rows = session.execute(stmt).all()
        return [PartialRice.from_row(row) for row in rows]

    def create_rice(
        self,
        author_id: uuid.UUID,
        title: str,
        description: str,
        *,
        dotfiles_path: str,
        dotfiles_size: int,
        preview_paths: list[str],
        created_at: Optional[datetime] = None,
    ) -> RiceRecord:
        """Insert a rice with its dotfiles and previews in one transaction."""
        now = created_at or utcnow()
        with self.Session() as session:
            if not session.get(UserRow, author_id):
                raise UserNotFoundError(str(author_id))
            rice = RiceRow(
                id=uuid.uuid4(),
                author_id=author_id,
                title=title,
                slug=slugify(title),
                description=description,
                created_at=now,
                updated_at=now,
            )
            session.add(rice)
            try:
                session.flush()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRiceError(title) from exc
            session.add(
                RiceDotfilesRow(
                    rice_id=rice.id,
                    file_path=dotfiles_path,
                    file_size=dotfiles_size,
                    download_count=0,
                    created_at=now,
                    updated_at=now,
                )
            )
            # Upload order decides the thumbnail, so keep creation times distinct.
            for index, path in enumerate(preview_paths):
                session.add(
                    RicePreviewRow(
                        id=uuid.uuid4(),
                        rice_id=rice.id,
                        file_path=path,
                        created_at=now + timedelta(microseconds=index),
                    )
                )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRiceError(title) from exc
            return _to_rice(rice)

    def get_rice(
        self, rice_id: uuid.UUID, viewer_id: Optional[uuid.UUID] = None
    ) -> Optional[RiceDetail]:
        with self.Session() as session:
            rice = session.get(RiceRow, rice_id)
            if not rice:
                return None
            return self._load_detail(session, rice, viewer_id)

    def get_rice_by_slug(
        self, username: str, slug: str, viewer_id: Optional[uuid.UUID] = None
    ) -> Optional[RiceDetail]:
        """Look a rice up by its author's username and its slug."""
        with self.Session() as session:
            rice = session.scalar(
                select(RiceRow)
                .join(UserRow, UserRow.id == RiceRow.author_id)
                .where(RiceRow.slug == slug, UserRow.username == username)
            )
            if not rice:
                return None
            return self._load_detail(session, rice, viewer_id)

    def _load_detail(
        self, session: Session, rice: RiceRow, viewer_id: Optional[uuid.UUID]
    ) -> RiceDetail:
        author = session.get(UserRow, rice.author_id)
        dotfiles = session.get(RiceDotfilesRow, rice.id)
        previews = session.scalars(
            select(RicePreviewRow)
            .where(RicePreviewRow.rice_id == rice.id)
            .order_by(RicePreviewRow.created_at.asc(), RicePreviewRow.id.asc())
        ).all()
        star_count = session.scalar(
            select(func.count())
            .select_from(RiceStarRow)
            .where(RiceStarRow.rice_id == rice.id)
        )
        is_starred = False
        if viewer_id is not None:
            is_starred = session.get(RiceStarRow, (rice.id, viewer_id)) is not None
        return RiceDetail(
            rice=_to_rice(rice),
            author=_to_user(author),
            dotfiles=_to_dotfiles(dotfiles),
            previews=[_to_preview(p) for p in previews],
            star_count=star_count or 0,
            is_starred=is_starred,
        )

    def find_user_by_username(self, username: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.scalar(select(UserRow).where(UserRow.username == username))
            return _to_user(row) if row else None

    def fetch_user_rices(
        self, author_id: uuid.UUID, viewer_id: Optional[uuid.UUID] = None
    ) -> list[PartialRice]:
        """Every rice by one author, newest first."""
        stmt = build_user_rices_query(author_id, viewer_id)
        with self.Session() as session:
            rows = session.execute(stmt).all()
        return [PartialRice.from_row(row) for row in rows]

    def is_rice_author(self, rice_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        with self.Session() as session:
            found = session.scalar(
                select(RiceRow.id).where(
                    RiceRow.id == rice_id, RiceRow.author_id == user_id
                )
            )
            return found is not None

    def update_rice(
        self,
        rice_id: uuid.UUID,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> RiceRecord:
        with self.Session() as session:
            rice = session.get(RiceRow, rice_id)
            if not rice:
                raise RiceNotFoundError(str(rice_id))
            if title is not None:
                rice.title = title
                rice.slug = slugify(title)
            if description is not None:
                rice.description = description
            rice.updated_at = utcnow()
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRiceError(title or "") from exc
            return _to_rice(rice)

    def replace_dotfiles(
        self, rice_id: uuid.UUID, file_path: str, file_size: int
    ) -> tuple[DotfilesRecord, str]:
        """Point the rice at new dotfiles; returns the record and the old path."""
        with self.Session() as session:
            dotfiles = session.get(RiceDotfilesRow, rice_id)
            if not dotfiles:
                raise RiceNotFoundError(str(rice_id))
            old_path = dotfiles.file_path
            dotfiles.file_path = file_path
            dotfiles.file_size = file_size
            dotfiles.updated_at = utcnow()
            session.commit()
            return _to_dotfiles(dotfiles), old_path

    def increment_downloads(self, rice_id: uuid.UUID) -> Optional[str]:
        """Bump the download counter and return the dotfiles path."""
        with self.Session() as session:
            result = session.execute(
                update(RiceDotfilesRow)
                .where(RiceDotfilesRow.rice_id == rice_id)
                .values(download_count=RiceDotfilesRow.download_count + 1)
            )
            if result.rowcount != 1:
                session.rollback()
                return None
            path = session.scalar(
                select(RiceDotfilesRow.file_path).where(
                    RiceDotfilesRow.rice_id == rice_id
                )
            )
            session.commit()
            return path

    def preview_count(self, rice_id: uuid.UUID) -> int:
        with self.Session() as session:
            return session.scalar(
                select(func.count())
                .select_from(RicePreviewRow)
                .where(RicePreviewRow.rice_id == rice_id)
            ) or 0

    def add_preview(self, rice_id: uuid.UUID, file_path: str) -> PreviewRecord:
        with self.Session() as session:
            row = RicePreviewRow(
                id=uuid.uuid4(), rice_id=rice_id, file_path=file_path, created_at=utcnow()
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise RiceNotFoundError(str(rice_id)) from exc
            return _to_preview(row)

    def delete_preview(
        self, rice_id: uuid.UUID, preview_id: uuid.UUID
    ) -> Optional[str]:
        """Delete a preview; returns its path, or None when it does not exist."""
        with self.Session() as session:
            row = session.scalar(
                select(RicePreviewRow).where(
                    RicePreviewRow.id == preview_id,
                    RicePreviewRow.rice_id == rice_id,
                )
            )
            if not row:
                return None
            path = row.file_path
            session.delete(row)
            session.commit()
            return path

    def add_star(self, rice_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Star a rice. Starring twice is a no-op."""
        with self.Session() as session:
            if not session.get(RiceRow, rice_id):
                raise RiceNotFoundError(str(rice_id))
            if not session.get(UserRow, user_id):
                raise UserNotFoundError(str(user_id))
            if session.get(RiceStarRow, (rice_id, user_id)):
                return
            session.add(RiceStarRow(rice_id=rice_id, user_id=user_id))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                # A concurrent request inserted the same star first.
                if session.get(RiceStarRow, (rice_id, user_id)) is None:
                    raise

    def remove_star(self, rice_id: uuid.UUID, user_id: uuid.UUID) -> None:
        with self.Session() as session:
            session.execute(
                delete(RiceStarRow).where(
                    RiceStarRow.rice_id == rice_id, RiceStarRow.user_id == user_id
                )
            )
            session.commit()

    def delete_rice(self, rice_id: uuid.UUID) -> bool:
        with self.Session() as session:
            rice = session.get(RiceRow, rice_id)
            if not rice:
                return False
            session.delete(rice)
            session.commit()
            return True
