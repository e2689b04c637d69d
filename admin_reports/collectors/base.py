"""
Base collector class — the fetch-and-reshape half of every report.
Collectors turn vendor API output into flat row dicts grouped by dataset.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

from ..cache.store import ReportCache
from ..config import CollectionConfig
from ..graph.client import GraphClient, GraphAPIError
from ..safety.guardian import SafetyViolation

logger = logging.getLogger("admin_reports.collectors")


class CollectorResult:
    """Datasets (lists of row dicts) plus run metadata."""

    def __init__(self, collector_name: str):
        self.collector_name = collector_name
        self.data: dict[str, Any] = {}
        self.metadata: dict[str, Any] = {
            "collector": collector_name,
            "started_at": None,
            "completed_at": None,
            "duration_seconds": 0,
            "items_collected": 0,
            "errors": [],
            "warnings": [],
            "endpoints_queried": 0,
            "skipped_sections": [],
        }

    def add_data(self, key: str, value: Any):
        self.data[key] = value
        if isinstance(value, list):
            self.metadata["items_collected"] += len(value)
        elif isinstance(value, dict):
            self.metadata["items_collected"] += 1

    def add_error(self, error: str):
        self.metadata["errors"].append(error)
        logger.error(f"[{self.collector_name}] {error}")

    def add_warning(self, warning: str):
        self.metadata["warnings"].append(warning)
        logger.warning(f"[{self.collector_name}] {warning}")

    def add_skipped(self, section: str, reason: str):
        self.metadata["skipped_sections"].append({"section": section, "reason": reason})
        logger.info(f"[{self.collector_name}] Skipped {section}: {reason}")

    def datasets(self) -> dict[str, list[dict]]:
        """Only the row datasets, i.e. list values whose key isn't private."""
        return {
            k: v for k, v in self.data.items()
            if isinstance(v, list) and not k.startswith("_")
        }

    def to_dict(self) -> dict:
        return {
            "data": self.data,
            "metadata": self.metadata,
        }


class BaseCollector(ABC):
    """
    Abstract base class for all collectors.

    Subclasses implement collect(). The base class provides:
      - Caching integration (Graph-backed collectors only)
      - Timing and metadata
      - Error capture so one failing section doesn't sink the report
      - Safe Graph helpers that record permission gaps
    """

    name: str = "base"
    description: str = "Base collector"
    cacheable: bool = False

    def __init__(
        self,
        config: CollectionConfig,
        graph: Optional[GraphClient] = None,
        cache: Optional[ReportCache] = None,
        run_id: str = "",
        options: Optional[dict[str, Any]] = None,
    ):
        self.config = config
        self.graph = graph
        self.cache = cache
        self.run_id = run_id
        self.options = options or {}

    @property
    def cache_key(self) -> str:
        # Profiles share one cache file, so the tenant is part of the key
        return f"collector:{self.name}:{self.options.get('tenant_id', '')}"

    async def execute(self) -> CollectorResult:
        result = CollectorResult(self.name)
        result.metadata["started_at"] = time.time()
        logger.info(f"[{self.name}] Starting collection...")

        try:
            if self.cache and self.cacheable:
                cached = self.cache.get(self.cache_key)
                if cached:
                    logger.info(f"[{self.name}] Using cached data.")
                    for key, value in cached.items():
                        result.add_data(key, value)
                    result.metadata["from_cache"] = True
                    result.metadata["completed_at"] = time.time()
                    return result

            await self.collect(result)

            if self.cache and self.cacheable and result.data and not result.metadata["errors"]:
                self.cache.put(self.cache_key, result.data, self.run_id)

        except SafetyViolation:
            raise
        except Exception as e:
            result.add_error(f"Collection failed: {type(e).__name__}: {e}")
            logger.exception(f"[{self.name}] Collection failed")

        result.metadata["completed_at"] = time.time()
        result.metadata["duration_seconds"] = round(
            result.metadata["completed_at"] - result.metadata["started_at"], 2
        )
        logger.info(
            f"[{self.name}] Completed in {result.metadata['duration_seconds']}s — "
            f"{result.metadata['items_collected']} items"
        )
        return result

    @abstractmethod
    async def collect(self, result: CollectorResult):
        """Gather and reshape data; add datasets via result.add_data()."""
        raise NotImplementedError

    def _require_graph(self) -> GraphClient:
        if self.graph is None:
            raise RuntimeError(f"Collector {self.name} needs a Graph client")
        return self.graph

    def _note_gap(self, endpoint: str, result: CollectorResult, msg: str):
        result.add_warning(f"Permission denied: {endpoint} — {msg}")
        result.metadata.setdefault("permission_gaps", []).append(endpoint)

    async def safe_get_all(self, endpoint: str, result: CollectorResult, **kwargs) -> list:
        """Get all pages and record errors."""
        try:
            data = await self._require_graph().get_all_pages(endpoint, **kwargs)
            result.metadata["endpoints_queried"] += 1
            return data
        except GraphAPIError as e:
            if e.status_code == 403:
                self._note_gap(endpoint, result, str(e))
            else:
                result.add_error(f"Failed to paginate {endpoint}: {e}")
            return []

    async def safe_report(self, endpoint: str, result: CollectorResult, **kwargs) -> list:
        """Download a CSV usage report and record errors."""
        try:
            rows = await self._require_graph().get_report(endpoint, **kwargs)
            result.metadata["endpoints_queried"] += 1
            return rows
        except GraphAPIError as e:
            if e.status_code == 403:
                self._note_gap(endpoint, result, str(e))
            else:
                result.add_error(f"Failed to download report {endpoint}: {e}")
            return []
