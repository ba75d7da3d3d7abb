"""
Unit tests for UTC timestamp helpers.
"""

from datetime import datetime, timedelta, timezone

from stockledger.utils.timeutils import as_utc, utc_isoformat


class TestAsUtc:

    def test_naive_value_is_taken_as_utc(self):
        value = as_utc(datetime(2026, 5, 1, 9, 30))
        assert value == datetime(2026, 5, 1, 9, 30, tzinfo=timezone.utc)
        assert value.utcoffset() == timedelta(0)

    def test_aware_value_is_converted(self):
        plus_five = timezone(timedelta(hours=5))
        value = as_utc(datetime(2026, 5, 1, 9, 30, tzinfo=plus_five))
        assert value == datetime(2026, 5, 1, 4, 30, tzinfo=timezone.utc)
        assert value.tzinfo == timezone.utc

    def test_none_passes_through(self):
        assert as_utc(None) is None
        assert utc_isoformat(None) is None

    def test_isoformat_carries_offset(self):
        assert utc_isoformat(datetime(2026, 5, 1, 9, 30)) == '2026-05-01T09:30:00+00:00'
