"""
Exchange Online Mailbox Collector
Reads the Graph mailbox usage report (CSV) and reshapes it into a mailbox
inventory with quota consumption.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from .base import BaseCollector, CollectorResult
from ..timeutil import days_since, iso

logger = logging.getLogger("admin_reports.collectors.mailboxes")

BYTES_PER_MB = 1024 ** 2
BYTES_PER_GB = 1024 ** 3

# When "display concealed user names" is on, Graph reports replace UPNs
# with a 32-char hex digest
_CONCEALED = re.compile(r"^[0-9A-F]{32}$", re.IGNORECASE)


def _to_int(value) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _mb(value: Optional[int]) -> Optional[float]:
    return round(value / BYTES_PER_MB, 1) if value is not None else None


def _gb(value: Optional[int]) -> Optional[float]:
    return round(value / BYTES_PER_GB, 2) if value is not None else None


def quota_used_pct(storage: Optional[int], quota: Optional[int]) -> Optional[float]:
    """Percent of the prohibit-send quota in use, None when the quota is unknown."""
    if storage is None or not quota:
        return None
    return round(storage / quota * 100, 1)


class MailboxCollector(BaseCollector):
    name = "mailboxes"
    description = "Exchange Online mailbox sizes, quotas and activity"
    cacheable = True

    async def collect(self, result: CollectorResult):
        period = self.config.report_period
        rows = await self.safe_report(
            f"reports/getMailboxUsageDetail(period='{period}')", result
        )

        mailboxes = []
        deleted = 0
        for row in rows:
            if row.get("Is Deleted", "").lower() == "true":
                deleted += 1
                continue
            mailboxes.append(self._mailbox_row(row))

        if mailboxes and all(_CONCEALED.match(m["UserPrincipalName"] or "") for m in mailboxes):
            result.add_warning(
                "Report user names are concealed; turn off 'Display concealed "
                "user, group, and site names' in the admin center for named rows"
            )

        if deleted:
            logger.info(f"[mailboxes] Skipped {deleted} deleted mailboxes")
        result.add_data("mailboxes", mailboxes)

    def _mailbox_row(self, row: dict) -> dict:
        storage = _to_int(row.get("Storage Used (Byte)"))
        warning_quota = _to_int(row.get("Issue Warning Quota (Byte)"))
        send_quota = _to_int(row.get("Prohibit Send Quota (Byte)"))
        send_receive_quota = _to_int(row.get("Prohibit Send/Receive Quota (Byte)"))
        last_activity = row.get("Last Activity Date", "")
        idle_days = days_since(last_activity)
        return {
            "UserPrincipalName": row.get("User Principal Name"),
            "DisplayName": row.get("Display Name"),
            "RecipientType": row.get("Recipient Type") or "User",
            "CreatedDate": iso(row.get("Created Date")),
            "LastActivityDate": iso(last_activity),
            "DaysSinceActivity": idle_days,
            "IsInactive": idle_days is None or idle_days >= self.config.inactive_mailbox_days,
            "ItemCount": _to_int(row.get("Item Count")),
            "StorageUsedMB": _mb(storage),
            "StorageUsedGB": _gb(storage),
            "IssueWarningQuotaGB": _gb(warning_quota),
            "ProhibitSendQuotaGB": _gb(send_quota),
            "ProhibitSendReceiveQuotaGB": _gb(send_receive_quota),
            "QuotaUsedPct": quota_used_pct(storage, send_quota),
            "DeletedItemCount": _to_int(row.get("Deleted Item Count")),
            "DeletedItemSizeMB": _mb(_to_int(row.get("Deleted Item Size (Byte)"))),
            "HasArchive": (row.get("Has Archive", "").lower() == "true"),
        }
