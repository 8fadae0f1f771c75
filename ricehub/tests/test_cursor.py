import unittest
import uuid
from datetime import datetime, timedelta, timezone

from ricehub.cursor import (
    FIRST_PAGE,
    NIL_ID,
    ZERO_CREATED_AT,
    Continuation,
    decode_cursor,
    format_timestamp,
    parse_timestamp,
)
from ricehub.errors import InvalidCursor


class DecodeCursorTests(unittest.TestCase):
    def test_all_fields_absent_is_first_page(self):
        self.assertIs(decode_cursor(), FIRST_PAGE)
        self.assertIs(decode_cursor("", "", ""), FIRST_PAGE)

    def test_full_continuation(self):
        rice_id = uuid.uuid4()
        cursor = decode_cursor(
            str(rice_id), "2026-10-01T12:00:00.123456+00:00", "42"
        )
        self.assertEqual(
            cursor,
            Continuation(
                last_id=rice_id,
                last_created_at=datetime(
                    2026, 10, 1, 12, 0, 0, 123456, tzinfo=timezone.utc
                ),
                last_downloads=42,
            ),
        )

    def test_partial_cursor_is_passed_through(self):
        rice_id = uuid.uuid4()
        cursor = decode_cursor(last_id=str(rice_id))
        self.assertIsInstance(cursor, Continuation)
        self.assertEqual(cursor.last_id, rice_id)
        self.assertIsNone(cursor.last_created_at)
        self.assertIsNone(cursor.last_downloads)
        self.assertEqual(cursor.created_at_or_zero, ZERO_CREATED_AT)
        self.assertEqual(cursor.downloads_or_zero, 0)

    def test_missing_id_falls_back_to_nil_uuid(self):
        cursor = decode_cursor(last_downloads="3")
        self.assertEqual(cursor.id_or_zero, NIL_ID)

    def test_invalid_id(self):
        with self.assertRaises(InvalidCursor) as ctx:
            decode_cursor(last_id="not-a-uuid")
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIn("last id", ctx.exception.messages[0])

    def test_invalid_timestamp(self):
        for value in (
            "not-a-date",
            "2026-10-01T12:00:00+00:00",
            "2026-10-01T12:00:00.123+00:00",
            "2026-10-01T12:00:00.123456Z",
            "2026-10-01 12:00:00.123456+00:00",
        ):
            with self.subTest(value=value):
                with self.assertRaises(InvalidCursor):
                    decode_cursor(last_created_at=value)

    def test_invalid_downloads(self):
        for value in ("abc", "-1", "1.5"):
            with self.subTest(value=value):
                with self.assertRaises(InvalidCursor):
                    decode_cursor(last_downloads=value)


class TimestampTests(unittest.TestCase):
    def test_offset_is_normalized_to_utc(self):
        parsed = parse_timestamp("2026-10-01T14:00:00.000001+02:00")
        self.assertEqual(
            parsed, datetime(2026, 10, 1, 12, 0, 0, 1, tzinfo=timezone.utc)
        )
        self.assertEqual(parsed.utcoffset(), timedelta(0))

    def test_unescaped_plus_in_query_string(self):
        parsed = parse_timestamp("2026-10-01T12:00:00.000000 00:00")
        self.assertEqual(parsed, datetime(2026, 10, 1, 12, tzinfo=timezone.utc))

    def test_format_is_accepted_by_parse(self):
        value = datetime(2026, 10, 1, 12, 0, 0, tzinfo=timezone.utc)
        formatted = format_timestamp(value)
        self.assertEqual(formatted, "2026-10-01T12:00:00.000000+00:00")
        self.assertEqual(parse_timestamp(formatted), value)

    def test_naive_timestamps_are_treated_as_utc(self):
        self.assertEqual(
            format_timestamp(datetime(2026, 1, 2, 3, 4, 5, 6)),
            "2026-01-02T03:04:05.000006+00:00",
        )


if __name__ == "__main__":
    unittest.main()
