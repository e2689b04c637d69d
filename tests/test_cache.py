import sqlite3
from types import SimpleNamespace

from admin_reports.cache import store as store_module
from admin_reports.cache.store import ReportCache


def test_put_get_round_trip(tmp_path):
    cache = ReportCache(tmp_path, ttl_hours=1)
    cache.put("collector:users:t1", {"users": [{"UserPrincipalName": "a@contoso.com"}]}, "run1")

    assert cache.get("collector:users:t1") == {"users": [{"UserPrincipalName": "a@contoso.com"}]}
    assert cache.get("collector:users:t2") is None


def test_expired_entries(tmp_path, monkeypatch):
    cache = ReportCache(tmp_path, ttl_hours=1)
    cache.put("k", [1, 2, 3], "run1")

    now = store_module.time.time()
    monkeypatch.setattr(store_module, "time", SimpleNamespace(time=lambda: now + 2 * 3600))
    assert cache.get("k") is None
    assert cache.clear_expired() == 1


def test_run_log(tmp_path):
    cache = ReportCache(tmp_path)
    cache.start_run("run1", "users")
    cache.complete_run("run1", "partial")

    with sqlite3.connect(tmp_path / "report_cache.db") as conn:
        row = conn.execute("SELECT report, status, completed_at FROM run_log WHERE run_id='run1'").fetchone()
    assert row[0] == "users"
    assert row[1] == "partial"
    assert row[2] is not None
