"""
Lync / Skype for Business Pool Analyzer
Flags the pools that block or complicate a Teams migration.
"""

from __future__ import annotations

import logging
from typing import Any

from .base import BaseAnalyzer

logger = logging.getLogger("admin_reports.analyzers.pools")

# Category -> check raised for every pool in it
CATEGORY_CHECKS = {
    "Survivable Branch Appliance": "sba_replacement",
    "Edge": "edge_federation_plan",
    "Persistent Chat": "persistent_chat_decision",
    "Other": "uncategorized_pool",
}


class PoolAnalyzer(BaseAnalyzer):
    name = "pool_analyzer"
    report = "pools"
    description = "Teams migration readiness of the on-premises topology"

    TITLES = {
        "sba_replacement": "Branch appliance needs replacement planning",
        "edge_federation_plan": "Edge pool needs federation and external-access plan",
        "pool_hosting_users": "Pool still hosts users",
        "persistent_chat_decision": "Persistent Chat needs a content migration decision",
        "uncategorized_pool": "Pool role could not be determined",
    }
    SEVERITIES = {
        "sba_replacement": "high",
        "edge_federation_plan": "medium",
        "pool_hosting_users": "medium",
        "persistent_chat_decision": "medium",
        "uncategorized_pool": "low",
    }
    DEDUCTIONS = {
        "sba_replacement": 5,
        "edge_federation_plan": 3,
        "pool_hosting_users": 3,
        "persistent_chat_decision": 3,
        "uncategorized_pool": 2,
    }

    def _analyze(self, data: dict[str, Any]):
        for pool in data.get("pools", []):
            fqdn = pool.get("Pool", "")
            check = CATEGORY_CHECKS.get(pool.get("Category"))
            if check:
                self.add_finding(
                    check,
                    subject=fqdn,
                    detail=f"Site {pool.get('Site') or '-'}; services: {pool.get('Services') or '-'}",
                    recommendation=pool.get("MigrationAction", ""),
                )

            users = pool.get("UserCount") or 0
            if users > 0:
                self.add_finding(
                    "pool_hosting_users",
                    subject=fqdn,
                    detail=f"{users} users homed on {pool.get('Category')} pool",
                    evidence={"users": users},
                    recommendation="Move users to Teams Only before decommissioning",
                )
