"""
File Share Permission Analyzer
Analyzes: broad groups with Full or Modify rights, explicit denies, broken inheritance,
orphaned SIDs and folders that could not be read.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from .base import BaseAnalyzer

logger = logging.getLogger("admin_reports.analyzers.shares")

BROAD_GROUPS = {"everyone", "authenticated users", "domain users", "users"}
# Full control, Modify and GENERIC_ALL. POSIX rwx renders as F.
MODIFY_RIGHTS = {"F", "M", "GA"}

_SID = re.compile(r"^\*?S-1-\d+(-\d+)+$", re.IGNORECASE)


def short_identity(identity: str) -> str:
    """'CONTOSO\\Domain Users' -> 'domain users'."""
    return identity.rsplit("\\", 1)[-1].strip().lower()


def grants_modify(rights: str) -> bool:
    return any(r.strip() in MODIFY_RIGHTS for r in (rights or "").split(","))


class ShareAnalyzer(BaseAnalyzer):
    name = "share_analyzer"
    report = "shares"
    description = "File share permission hygiene"

    TITLES = {
        "broad_modify_access": "Broad group has Full or Modify rights",
        "explicit_deny": "Explicit Deny entry",
        "inheritance_disabled": "Inheritance disabled on folder",
        "unresolved_sid": "Unresolved SID in ACL",
        "scan_error": "Folder could not be scanned",
    }
    SEVERITIES = {
        "broad_modify_access": "high",
        "explicit_deny": "low",
        "inheritance_disabled": "low",
        "unresolved_sid": "medium",
        "scan_error": "medium",
    }
    DEDUCTIONS = {
        "broad_modify_access": 5,
        "explicit_deny": 1,
        "inheritance_disabled": 0.5,
        "unresolved_sid": 1,
        "scan_error": 1,
    }

    def _analyze(self, data: dict[str, Any]):
        for ace in data.get("permissions", []):
            path = ace.get("Path", "")
            identity = ace.get("Identity", "")
            # Below the scan root inherited entries were already seen on a parent;
            # on the root they were set above the tree and are reported here
            if ace.get("Inherited") and ace.get("Depth") != 0:
                continue

            if ace.get("AccessType") == "Deny":
                self.add_finding(
                    "explicit_deny",
                    subject=path,
                    detail=f"{identity} denied ({ace.get('Rights')})",
                    recommendation="Prefer removing the grant over adding a deny",
                )
            elif short_identity(identity) in BROAD_GROUPS and grants_modify(ace.get("Rights", "")):
                self.add_finding(
                    "broad_modify_access",
                    subject=path,
                    detail=f"{identity} has ({ace.get('Rights')})",
                    evidence={"flags": ace.get("InheritanceFlags")},
                    recommendation="Replace with a role group granted only the rights it needs",
                )

            if _SID.match(identity):
                self.add_finding(
                    "unresolved_sid",
                    subject=path,
                    detail=f"{identity} no longer resolves to an account",
                    recommendation="Remove the orphaned entry",
                )

        for folder in data.get("folders", []):
            if folder.get("InheritanceDisabled"):
                self.add_finding(
                    "inheritance_disabled",
                    subject=folder.get("Path", ""),
                    detail=f"{folder.get('ExplicitAceCount')} explicit entries",
                    recommendation="Confirm the break is intentional and documented",
                )

        for error in data.get("scan_errors", []):
            self.add_finding(
                "scan_error",
                subject=error.get("Path", ""),
                detail=error.get("Error", ""),
                recommendation="Run the scan with an account that can read the folder ACL",
            )
