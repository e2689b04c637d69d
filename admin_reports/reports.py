"""
Report registry — which collector, analyzer and datasets make up each report.
"""

from __future__ import annotations

from dataclasses import dataclass

from .analyzers import (
    ActiveDirectoryAnalyzer,
    BaseAnalyzer,
    MailboxAnalyzer,
    PkiAnalyzer,
    PoolAnalyzer,
    ShareAnalyzer,
    TeamsAnalyzer,
    UserLicenseAnalyzer,
)
from .collectors import (
    ActiveDirectoryCollector,
    BaseCollector,
    MailboxCollector,
    PkiCollector,
    PoolCollector,
    SharePermissionCollector,
    TeamsCollector,
    UserLicenseCollector,
)


@dataclass(frozen=True)
class ReportDefinition:
    name: str
    title: str
    collector: type[BaseCollector]
    analyzer: type[BaseAnalyzer]
    needs_graph: bool
    datasets: tuple[str, ...]


REPORTS: dict[str, ReportDefinition] = {
    "users": ReportDefinition(
        name="users",
        title="Microsoft 365 User & Licence Report",
        collector=UserLicenseCollector,
        analyzer=UserLicenseAnalyzer,
        needs_graph=True,
        datasets=("users", "licenses"),
    ),
    "mailboxes": ReportDefinition(
        name="mailboxes",
        title="Exchange Online Mailbox Report",
        collector=MailboxCollector,
        analyzer=MailboxAnalyzer,
        needs_graph=True,
        datasets=("mailboxes",),
    ),
    "teams": ReportDefinition(
        name="teams",
        title="Microsoft Teams Inventory",
        collector=TeamsCollector,
        analyzer=TeamsAnalyzer,
        needs_graph=True,
        datasets=("teams",),
    ),
    "ad": ReportDefinition(
        name="ad",
        title="Active Directory Health Report",
        collector=ActiveDirectoryCollector,
        analyzer=ActiveDirectoryAnalyzer,
        needs_graph=False,
        datasets=("ad_users", "ad_computers", "privileged_members"),
    ),
    "pki": ReportDefinition(
        name="pki",
        title="PKI / ADCS Health Report",
        collector=PkiCollector,
        analyzer=PkiAnalyzer,
        needs_graph=False,
        datasets=("certificates", "crls", "cdp_checks"),
    ),
    "pools": ReportDefinition(
        name="pools",
        title="Lync / Skype for Business Pool Migration Report",
        collector=PoolCollector,
        analyzer=PoolAnalyzer,
        needs_graph=False,
        datasets=("pools", "pool_summary"),
    ),
    "shares": ReportDefinition(
        name="shares",
        title="File Share Permission Report",
        collector=SharePermissionCollector,
        analyzer=ShareAnalyzer,
        needs_graph=False,
        datasets=("folders", "permissions", "scan_errors"),
    ),
}

GRAPH_REPORTS = tuple(name for name, r in REPORTS.items() if r.needs_graph)
