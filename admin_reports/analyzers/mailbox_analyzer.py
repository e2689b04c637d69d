"""
Mailbox Analyzer
Analyzes: quota pressure, mailboxes over the send limit, inactive mailboxes,
oversized shared mailboxes.
"""

from __future__ import annotations

import logging
from typing import Any

from .base import BaseAnalyzer

logger = logging.getLogger("admin_reports.analyzers.mailboxes")

# Shared mailboxes above this size need their own licence
SHARED_MAILBOX_FREE_LIMIT_GB = 50.0


class MailboxAnalyzer(BaseAnalyzer):
    name = "mailbox_analyzer"
    report = "mailboxes"
    description = "Exchange Online mailbox size and activity"

    TITLES = {
        "quota_warning": "Mailbox approaching quota",
        "over_send_quota": "Mailbox over prohibit-send quota",
        "inactive_mailbox": "Inactive mailbox",
        "shared_over_limit": "Shared mailbox over 50 GB",
    }
    SEVERITIES = {
        "quota_warning": "medium",
        "over_send_quota": "high",
        "inactive_mailbox": "low",
        "shared_over_limit": "informational",
    }
    DEDUCTIONS = {
        "quota_warning": 2,
        "over_send_quota": 5,
        "inactive_mailbox": 0.5,
        "shared_over_limit": 0,
    }

    def _analyze(self, data: dict[str, Any]):
        warning_pct = self.setting("mailbox_quota_warning_pct", 90.0)

        for mbx in data.get("mailboxes", []):
            upn = mbx.get("UserPrincipalName") or mbx.get("DisplayName") or ""
            pct = mbx.get("QuotaUsedPct")

            if pct is not None and pct >= 100:
                self.add_finding(
                    "over_send_quota",
                    subject=upn,
                    detail=f"{mbx.get('StorageUsedGB')} GB used of {mbx.get('ProhibitSendQuotaGB')} GB",
                    evidence={"quota_used_pct": pct},
                    recommendation="Enable archiving or raise the quota; the user cannot send mail",
                )
            elif pct is not None and pct >= warning_pct:
                self.add_finding(
                    "quota_warning",
                    subject=upn,
                    detail=f"{pct}% of prohibit-send quota used",
                    evidence={"storage_gb": mbx.get("StorageUsedGB"),
                              "quota_gb": mbx.get("ProhibitSendQuotaGB"),
                              "has_archive": mbx.get("HasArchive")},
                    recommendation="Enable the online archive or a retention policy",
                )

            if mbx.get("IsInactive"):
                self.add_finding(
                    "inactive_mailbox",
                    subject=upn,
                    detail=(
                        f"No activity for {mbx['DaysSinceActivity']} days"
                        if mbx.get("DaysSinceActivity") is not None else "No recorded activity"
                    ),
                    recommendation="Confirm ownership; convert to shared or remove",
                )

            storage_gb = mbx.get("StorageUsedGB") or 0
            if "shared" in str(mbx.get("RecipientType", "")).lower() \
                    and storage_gb > SHARED_MAILBOX_FREE_LIMIT_GB:
                self.add_finding(
                    "shared_over_limit",
                    subject=upn,
                    detail=f"Shared mailbox holds {storage_gb} GB",
                    recommendation="Shared mailboxes over 50 GB need an Exchange Online Plan 2 licence",
                )
