"""Test utilities and helpers"""

import pytest
from datetime import datetime, timedelta, timezone

from demotape.utils.helpers import (
    check_timeout,
    encode_header_value,
    format_file_size,
    format_relative_time,
    format_timestamp,
    parse_timestamp,
)
from demotape.utils.logger import parse_size


class TestHeaderEncoding:
    """Test Dropbox-API-Arg header encoding"""

    def test_non_ascii_escaped(self):
        assert encode_header_value({"path": "/É"}) == '{"path":"/\\u00c9"}'

    def test_ascii_untouched(self):
        assert encode_header_value({"path": "/Music/a b.mp3"}) == '{"path":"/Music/a b.mp3"}'

    def test_delete_character_escaped(self):
        assert encode_header_value({"p": "\x7f"}) == '{"p":"\\u007f"}'

    def test_astral_surrogate_pair(self):
        assert encode_header_value({"p": "\U0001f3b5"}) == '{"p":"\\ud83c\\udfb5"}'

    def test_result_is_ascii(self):
        encoded = encode_header_value({"path": "/Ünïcödé/日本.mp3", "mute": True})
        encoded.encode('ascii')
        assert '"mute":true' in encoded


class TestTimeHelpers:
    """Test timestamp helpers"""

    def test_check_timeout(self):
        assert check_timeout(datetime.now() - timedelta(minutes=1), 5)
        assert not check_timeout(datetime.now() - timedelta(minutes=6), 5)
        assert not check_timeout(None)

    def test_parse_timestamp(self):
        parsed = parse_timestamp("2019-03-01T10:00:00Z")
        assert parsed == datetime(2019, 3, 1, 10, 0, tzinfo=timezone.utc)
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None

    def test_format_relative_time(self):
        now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert format_relative_time("2024-01-01T09:00:00Z", now=now) == "3 hours ago"
        assert format_relative_time("2024-01-01T11:00:00Z", now=now) == "an hour ago"
        assert format_relative_time("2024-01-01T11:59:50Z", now=now) == "a few seconds ago"
        assert format_relative_time("2023-12-30T12:00:00Z", now=now) == "2 days ago"
        assert format_relative_time(None) == "never"

    def test_format_timestamp(self):
        assert format_timestamp("2019-03-01T10:00:00Z") == "2019-03-01 10:00:00"
        assert format_timestamp("garbage") == "garbage"


class TestSizes:
    def test_format_file_size(self):
        assert format_file_size(1024) == "1.0 KB"
        assert format_file_size(1048576) == "1.0 MB"
        assert format_file_size(512) == "512 B"

    def test_parse_size(self):
        assert parse_size("10MB") == 10 * 1024 ** 2
        assert parse_size("500 kb") == 500 * 1024
        with pytest.raises(ValueError):
            parse_size("lots")
