from datetime import datetime, timedelta, timezone

import pytest

from admin_reports.timeutil import days_since, iso, parse_datetime


def test_graph_iso_string():
    assert parse_datetime("2024-10-01T12:34:56Z") == datetime(2024, 10, 1, 12, 34, 56, tzinfo=timezone.utc)


def test_report_date_only():
    assert parse_datetime("2024-10-01") == datetime(2024, 10, 1, tzinfo=timezone.utc)


def test_powershell_json_date():
    assert parse_datetime("/Date(1700000000000)/") == datetime.fromtimestamp(1700000000, tz=timezone.utc)
    assert parse_datetime("/Date(1700000000000+0100)/") == datetime.fromtimestamp(1700000000, tz=timezone.utc)


def test_filetime_int_and_string():
    # 2024-01-01T00:00:00Z as FILETIME
    filetime = 133485408000000000
    expected = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_datetime(filetime) == expected
    assert parse_datetime(str(filetime)) == expected


@pytest.mark.parametrize("never", [0, 0x7FFFFFFFFFFFFFFF, "", None, "not a date", True])
def test_never_and_garbage(never):
    assert parse_datetime(never) is None


def test_days_since_and_iso():
    now = datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert days_since("2024-02-20T00:00:00Z", now=now) == 10
    assert days_since(None, now=now) is None
    assert iso("") == ""
    assert iso(datetime(2024, 1, 1)) == "2024-01-01T00:00:00+00:00"


def test_naive_datetime_assumed_utc():
    naive = datetime.now() - timedelta(days=3)
    assert parse_datetime(naive).tzinfo is timezone.utc
