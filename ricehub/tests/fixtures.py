"""
Shared helpers for the test suite.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from sqlalchemy import update

from ricehub.db import RiceRecord, RiceStore, UserRecord
from ricehub.identity import IdentityProvider
from ricehub.tables import RiceDotfilesRow, RiceStarRow

TEST_SECRET = "test-secret-with-enough-bytes-for-hs256"
TEST_ALGORITHM = "HS256"

BASE_TIME = datetime(2026, 10, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_store() -> RiceStore:
    return RiceStore("sqlite+pysqlite:///:memory:")


def make_identity() -> IdentityProvider:
    return IdentityProvider(TEST_SECRET, algorithm=TEST_ALGORITHM)


def make_token(
    user_id: uuid.UUID,
    *,
    is_admin: bool = False,
    expires_in: timedelta = timedelta(hours=1),
    secret: str = TEST_SECRET,
) -> str:
    claims = {
        "sub": str(user_id),
        "isAdmin": is_admin,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(claims, secret, algorithm=TEST_ALGORITHM)


def bearer(user_id: uuid.UUID, **kwargs) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, **kwargs)}"}


def seed_rice(
    store: RiceStore,
    author: UserRecord,
    title: str,
    *,
    created_at: datetime = BASE_TIME,
    downloads: int = 0,
    previews: int = 1,
) -> RiceRecord:
    rice = store.create_rice(
        author.id,
        title,
        f"Description of {title}",
        dotfiles_path=f"/dotfiles/{uuid.uuid4()}.tar.gz",
        dotfiles_size=1024,
        preview_paths=[f"/previews/{uuid.uuid4()}.png" for _ in range(previews)],
        created_at=created_at,
    )
    if downloads:
        set_downloads(store, rice.id, downloads)
    return rice


def set_downloads(store: RiceStore, rice_id: uuid.UUID, downloads: int) -> None:
    with store.Session() as session:
        session.execute(
            update(RiceDotfilesRow)
            .where(RiceDotfilesRow.rice_id == rice_id)
            .values(download_count=downloads)
        )
        session.commit()


def add_stars(store: RiceStore, rice_id: uuid.UUID, users: list[UserRecord]) -> None:
    with store.Session() as session:
        for user in users:
            session.add(RiceStarRow(rice_id=rice_id, user_id=user.id))
        session.commit()
