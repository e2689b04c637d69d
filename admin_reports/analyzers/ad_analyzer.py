"""
Active Directory Analyzer
Analyzes: stale users and computers, non-expiring passwords, unsupported
operating systems, privileged group hygiene.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

from .base import BaseAnalyzer

logger = logging.getLogger("admin_reports.analyzers.ad")

MAX_PRIVILEGED_MEMBERS = 10


class ActiveDirectoryAnalyzer(BaseAnalyzer):
    name = "ad_analyzer"
    report = "ad"
    description = "Active Directory hygiene"

    TITLES = {
        "stale_user": "Stale enabled user account",
        "stale_computer": "Stale enabled computer account",
        "password_never_expires": "Password never expires",
        "unsupported_os": "Unsupported operating system",
        "disabled_privileged": "Disabled account in privileged group",
        "privileged_sprawl": "Privileged group has too many members",
    }
    SEVERITIES = {
        "stale_user": "medium",
        "stale_computer": "low",
        "password_never_expires": "medium",
        "unsupported_os": "high",
        "disabled_privileged": "medium",
        "privileged_sprawl": "high",
    }
    DEDUCTIONS = {
        "stale_user": 1,
        "stale_computer": 0.5,
        "password_never_expires": 1,
        "unsupported_os": 3,
        "disabled_privileged": 2,
        "privileged_sprawl": 5,
    }

    def _analyze(self, data: dict[str, Any]):
        self._analyze_users(data.get("ad_users", []))
        self._analyze_computers(data.get("ad_computers", []))
        self._analyze_privileged(data.get("privileged_members", []))

    def _analyze_users(self, users: list):
        for user in users:
            sam = user.get("SamAccountName") or user.get("Name") or ""
            if user.get("IsStale"):
                self.add_finding(
                    "stale_user",
                    subject=sam,
                    detail=(
                        f"No logon for {user['DaysSinceLogon']} days"
                        if user.get("DaysSinceLogon") is not None else "Never logged on"
                    ),
                    evidence={"ou": user.get("OU"), "last_logon": user.get("LastLogon")},
                    recommendation="Disable the account and move it to a quarantine OU",
                )
            if user.get("Enabled") and user.get("PasswordNeverExpires"):
                self.add_finding(
                    "password_never_expires",
                    subject=sam,
                    detail=f"Password age {user.get('PasswordAgeDays')} days",
                    recommendation="Use a gMSA for services or enforce password expiry",
                )

    def _analyze_computers(self, computers: list):
        for computer in computers:
            name = computer.get("Name") or ""
            if computer.get("IsStale"):
                self.add_finding(
                    "stale_computer",
                    subject=name,
                    detail=(
                        f"No logon for {computer['DaysSinceLogon']} days"
                        if computer.get("DaysSinceLogon") is not None else "Never logged on"
                    ),
                    evidence={"ou": computer.get("OU"), "os": computer.get("OperatingSystem")},
                    recommendation="Disable and remove after confirming the device is gone",
                )
            if computer.get("Enabled") and computer.get("UnsupportedOS"):
                self.add_finding(
                    "unsupported_os",
                    subject=name,
                    detail=f"{computer.get('OperatingSystem')} {computer.get('OperatingSystemVersion') or ''}".strip(),
                    recommendation="Upgrade or isolate the machine",
                )

    def _analyze_privileged(self, members: list):
        by_group = defaultdict(set)
        for m in members:
            group = m.get("Group") or ""
            by_group[group].add(m.get("SamAccountName") or m.get("DistinguishedName"))
            if m.get("Enabled") is False:
                self.add_finding(
                    "disabled_privileged",
                    subject=f"{group}\\{m.get('SamAccountName')}",
                    detail="Disabled account retains privileged group membership",
                    recommendation="Remove the account from the group",
                )

        for group, accounts in sorted(by_group.items()):
            if len(accounts) > MAX_PRIVILEGED_MEMBERS:
                self.add_finding(
                    "privileged_sprawl",
                    subject=group,
                    detail=f"{len(accounts)} effective members (limit {MAX_PRIVILEGED_MEMBERS})",
                    evidence=sorted(a for a in accounts if a),
                    recommendation="Reduce standing membership; delegate narrower rights",
                )
