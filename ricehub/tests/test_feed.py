import unittest
import uuid
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from ricehub.cursor import FIRST_PAGE, Continuation
from ricehub.db import RiceStore
from ricehub.errors import InternalError, InvalidCursor, InvalidSortMode
from ricehub.feed import FeedService
from ricehub.ranking import SortMode
from ricehub.tests.fixtures import BASE_TIME, make_store, seed_rice


class FeedServiceValidationTests(unittest.TestCase):
    def setUp(self):
        self.store = MagicMock(spec=RiceStore)
        self.store.fetch_rices.return_value = []
        self.feed = FeedService(self.store, cdn_url="https://cdn.test")

    def test_unknown_sort_is_rejected_before_cursor_parsing(self):
        with self.assertRaises(InvalidSortMode):
            self.feed.fetch_rices("foo", last_created_at="not-a-date")
        self.store.fetch_rices.assert_not_called()

    def test_malformed_cursor_never_reaches_store(self):
        with self.assertRaises(InvalidCursor):
            self.feed.fetch_rices("recent", last_created_at="not-a-date")
        with self.assertRaises(InvalidCursor):
            self.feed.fetch_rices("mostDownloads", last_downloads="many")
        self.store.fetch_rices.assert_not_called()

    def test_defaults_to_trending_first_page(self):
        self.feed.fetch_rices()
        self.store.fetch_rices.assert_called_once_with(
            SortMode.TRENDING, FIRST_PAGE, None
        )

    def test_passes_decoded_cursor_and_viewer(self):
        rice_id = uuid.uuid4()
        viewer_id = uuid.uuid4()
        self.feed.fetch_rices(
            "mostDownloads",
            last_id=str(rice_id),
            last_downloads="7",
            viewer_id=viewer_id,
        )
        self.store.fetch_rices.assert_called_once_with(
            SortMode.MOST_DOWNLOADS,
            Continuation(last_id=rice_id, last_downloads=7),
            viewer_id,
        )

    def test_store_failure_becomes_internal_error(self):
        self.store.fetch_rices.side_effect = OperationalError(
            "SELECT 1", {}, Exception("connection lost")
        )
        with self.assertRaises(InternalError) as ctx:
            self.feed.fetch_rices("recent")
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertNotIn("connection lost", ctx.exception.messages[0])


class FeedServiceMappingTests(unittest.TestCase):
    def test_rows_are_mapped_to_response_projection(self):
        store = make_store()
        author = store.create_user("mapper", "Map Per")
        rice = seed_rice(store, author, "Mapped rice", downloads=4)
        feed = FeedService(store, cdn_url="https://cdn.test")

        (item,) = feed.fetch_rices("recent")
        detail = store.get_rice(rice.id)
        self.assertEqual(item.id, rice.id)
        self.assertEqual(item.slug, "mapped-rice")
        self.assertEqual(item.authorUsername, "mapper")
        self.assertEqual(item.authorDisplayName, "Map Per")
        self.assertEqual(
            item.thumbnailUrl, "https://cdn.test" + detail.previews[0].file_path
        )
        self.assertEqual(item.downloadCount, 4)
        self.assertEqual(item.starCount, 0)
        self.assertFalse(item.isStarred)
        self.assertEqual(item.createdAt, BASE_TIME.isoformat(timespec="microseconds"))


if __name__ == "__main__":
    unittest.main()
