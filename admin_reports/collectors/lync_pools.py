"""
Lync / Skype for Business Pool Collector
Reads a topology export (Get-CsPool piped to Export-Csv or ConvertTo-Json)
and sorts each pool into a role category for Teams migration planning.
"""

from __future__ import annotations

import csv
import json
import logging
import re
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, Optional

from .base import BaseCollector, CollectorResult

logger = logging.getLogger("admin_reports.collectors.pools")

# Ordered: the first category with a matching pattern wins.
POOL_CATEGORIES = [
    {
        "category": "Survivable Branch Appliance",
        "patterns": ["*mssba*", "*sba*", "*sbs*"],
        "action": "Replace with a certified SBC / Teams Survivable Branch Appliance; "
                  "move branch users to Direct Routing",
    },
    {
        "category": "Edge",
        "patterns": ["*edge*"],
        "action": "Keep until the last user moves; re-plan federation and external "
                  "access in Teams, then decommission",
    },
    {
        "category": "Director",
        "patterns": ["*dir*", "directorserver:*"],
        "action": "Decommission after DNS/SIP records point at Microsoft 365",
    },
    {
        "category": "Mediation",
        "patterns": ["*med*", "mediationserver:*"],
        "action": "Migrate PSTN trunks to Teams Direct Routing or Calling Plans",
    },
    {
        "category": "Persistent Chat",
        "patterns": ["*pchat*", "*persistentchat*", "persistentchatserver:*"],
        "action": "Decide on chat-room content export; recreate rooms as Teams channels",
    },
    {
        "category": "Video Interop",
        "patterns": ["*vis*", "videointeropserver:*"],
        "action": "Replace with Cloud Video Interop for Teams",
    },
    {
        "category": "Front End",
        "patterns": ["*pool*", "*fe*", "userserver:*", "registrar:*"],
        "action": "Move users to Teams Only, then remove the pool from topology",
    },
]

OTHER_CATEGORY = {
    "category": "Other",
    "patterns": [],
    "action": "Review manually; role could not be inferred",
}

_SERVICE_SPLIT = re.compile(r"[;,\s]+")


def split_services(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return [s for s in _SERVICE_SPLIT.split(str(value)) if s]


def _match(value: str) -> Optional[dict]:
    for entry in POOL_CATEGORIES:
        if any(fnmatchcase(value, p) for p in entry["patterns"]):
            return entry
    return None


def categorize_pool(fqdn: str, services: Optional[list[str]] = None) -> dict:
    """
    Return the category entry for a pool by case-insensitive wildcard match.

    The FQDN is tried against the whole table before any service, so a front
    end pool with a collocated Mediation role stays a front end. Services are
    then tried in the order the topology lists them.
    """
    for value in [fqdn or "", *(services or [])]:
        entry = _match(value.lower())
        if entry:
            return entry
    return OTHER_CATEGORY


def _first(row: dict, *keys: str) -> Any:
    for key in keys:
        for candidate in (key, key.lower()):
            if row.get(candidate) not in (None, ""):
                return row[candidate]
    return None


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def load_topology(path: Path) -> list[dict]:
    """Read a pool export as CSV or JSON (one object or a list)."""
    text = path.read_text(encoding="utf-8-sig")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
        return data if isinstance(data, list) else [data]
    lines = text.splitlines()
    # Export-Csv without -NoTypeInformation starts with a "#TYPE ..." line
    if lines and lines[0].startswith("#TYPE"):
        lines = lines[1:]
    return list(csv.DictReader(lines))


class PoolCollector(BaseCollector):
    """
    Options:
      input — topology export file (.csv or .json)
    """

    name = "pools"
    description = "Lync / Skype for Business pool categorisation"

    async def collect(self, result: CollectorResult):
        path = Path(self.options["input"])
        try:
            raw = load_topology(path)
        except (OSError, json.JSONDecodeError, csv.Error) as e:
            result.add_error(f"Could not read topology export {path}: {e}")
            return

        pools = []
        for row in raw:
            fqdn = _first(row, "Identity", "Fqdn", "PoolFqdn")
            if not fqdn:
                result.add_warning(f"Skipping topology row without Identity/Fqdn: {row}")
                continue
            services = split_services(_first(row, "Services"))
            computers = split_services(_first(row, "Computers"))
            entry = categorize_pool(str(fqdn), services)
            site = _first(row, "Site") or ""
            pools.append({
                "Pool": str(fqdn),
                "Site": str(site).removeprefix("Site:"),
                "Category": entry["category"],
                "Services": "; ".join(services),
                "ComputerCount": len(computers),
                "Computers": "; ".join(computers),
                "UserCount": _to_int(_first(row, "UserCount", "Users")),
                "MigrationAction": entry["action"],
            })

        result.add_data("pools", pools)
        result.add_data("pool_summary", self._summarize(pools))

    def _summarize(self, pools: list[dict]) -> list[dict]:
        order = [e["category"] for e in POOL_CATEGORIES] + [OTHER_CATEGORY["category"]]
        actions = {e["category"]: e["action"] for e in POOL_CATEGORIES + [OTHER_CATEGORY]}
        summary = []
        for category in order:
            members = [p for p in pools if p["Category"] == category]
            if not members:
                continue
            summary.append({
                "Category": category,
                "PoolCount": len(members),
                "UserCount": sum(p["UserCount"] or 0 for p in members),
                "Pools": "; ".join(p["Pool"] for p in members),
                "MigrationAction": actions[category],
            })
        return summary
