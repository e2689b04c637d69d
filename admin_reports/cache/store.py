"""
SQLite cache for collector output.
Re-running a report inside the TTL reuses the last Graph pull instead of
hitting throttled endpoints again.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("admin_reports.cache")


class ReportCache:
    """
    Persistent cache backed by SQLite.
      - TTL-based expiration
      - One row per collector key, replaced on every fresh pull
      - Connection-per-call, so it is safe to use from asyncio tasks
      - Run log of report executions
    """

    def __init__(self, cache_dir: str | Path, ttl_hours: float = 4):
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.cache_dir / "report_cache.db"
        self.ttl_seconds = ttl_hours * 3600
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _init_db(self):
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    timestamp REAL NOT NULL,
                    run_id TEXT NOT NULL,
                    item_count INTEGER DEFAULT 0
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS run_log (
                    run_id TEXT PRIMARY KEY,
                    report TEXT NOT NULL,
                    started_at REAL NOT NULL,
                    completed_at REAL,
                    status TEXT DEFAULT 'running'
                )
            """)
            conn.commit()

    def get(self, key: str) -> Optional[Any]:
        """Return cached data, or None if missing or expired."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data, timestamp FROM cache_entries WHERE key = ?",
                (key,),
            ).fetchone()

        if row is None:
            return None

        data_json, timestamp = row
        if time.time() - timestamp > self.ttl_seconds:
            logger.debug(f"Cache expired for key: {key}")
            return None

        logger.debug(f"Cache hit for key: {key}")
        return json.loads(data_json)

    def put(self, key: str, data: Any, run_id: str):
        data_json = json.dumps(data, default=str)
        item_count = len(data) if isinstance(data, (list, dict)) else 1

        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO cache_entries (key, data, timestamp, run_id, item_count)
                VALUES (?, ?, ?, ?, ?)
                """,
                (key, data_json, time.time(), run_id, item_count),
            )
            conn.commit()
        logger.debug(f"Cached {item_count} items for key: {key}")

    def start_run(self, run_id: str, report: str):
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO run_log (run_id, report, started_at, status)
                VALUES (?, ?, ?, 'running')
                """,
                (run_id, report, time.time()),
            )
            conn.commit()

    def complete_run(self, run_id: str, status: str = "completed"):
        with self._connect() as conn:
            conn.execute(
                "UPDATE run_log SET completed_at = ?, status = ? WHERE run_id = ?",
                (time.time(), status, run_id),
            )
            conn.commit()

    def clear_expired(self) -> int:
        cutoff = time.time() - self.ttl_seconds
        with self._connect() as conn:
            deleted = conn.execute(
                "DELETE FROM cache_entries WHERE timestamp < ?",
                (cutoff,),
            ).rowcount
            conn.commit()
        if deleted:
            logger.info(f"Cleared {deleted} expired cache entries.")
        return deleted
