"""
Feed service behind ``GET /rices``.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ricehub.cursor import decode_cursor
from ricehub.db import RiceStore
from ricehub.errors import InternalError
from ricehub.ranking import parse_sort_mode
from ricehub.schemas import PartialRiceResponse

logger = logging.getLogger(__name__)


class FeedService:
    def __init__(self, store: RiceStore, cdn_url: str = ""):
        self.store = store
        self.cdn_url = cdn_url

    def fetch_rices(
        self,
        sort: Optional[str] = None,
        *,
        last_id: Optional[str] = None,
        last_created_at: Optional[str] = None,
        last_downloads: Optional[str] = None,
        viewer_id: Optional[uuid.UUID] = None,
    ) -> list[PartialRiceResponse]:
        """
        Return one page of the feed.

        The sort mode is checked before the cursor, and both before the store
        is queried, so a bad request never reaches the database.
        """
        sort_mode = parse_sort_mode(sort)
        cursor = decode_cursor(last_id, last_created_at, last_downloads)

        try:
            rices = self.store.fetch_rices(sort_mode, cursor, viewer_id)
        except SQLAlchemyError as exc:
            raise InternalError(exc) from exc

        logger.debug(
            "Served %d rices (sort=%s, cursor=%r, viewer=%s)",
            len(rices),
            sort_mode.value,
            cursor,
            viewer_id,
        )
        return [PartialRiceResponse.from_partial(r, self.cdn_url) for r in rices]
