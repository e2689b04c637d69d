"""
Teams Analyzer
Analyzes: ownership gaps, empty teams, teams with no activity in the report period.
"""

from __future__ import annotations

import logging
from typing import Any

from .base import BaseAnalyzer

logger = logging.getLogger("admin_reports.analyzers.teams")


class TeamsAnalyzer(BaseAnalyzer):
    name = "teams_analyzer"
    report = "teams"
    description = "Teams governance"

    TITLES = {
        "ownerless_team": "Team has no owner",
        "single_owner_team": "Team has a single owner",
        "empty_team": "Team has no members",
        "inactive_team": "Team inactive in report period",
    }
    SEVERITIES = {
        "ownerless_team": "high",
        "single_owner_team": "low",
        "empty_team": "low",
        "inactive_team": "low",
    }
    DEDUCTIONS = {
        "ownerless_team": 5,
        "single_owner_team": 1,
        "empty_team": 1,
        "inactive_team": 0.5,
    }

    def _analyze(self, data: dict[str, Any]):
        for team in data.get("teams", []):
            name = team.get("DisplayName") or team.get("TeamId") or ""
            owners = team.get("OwnerCount")

            if owners == 0:
                self.add_finding(
                    "ownerless_team",
                    subject=name,
                    detail="Nobody can manage membership or settings",
                    evidence={"team_id": team.get("TeamId")},
                    recommendation="Assign at least two owners",
                )
            elif owners == 1:
                self.add_finding(
                    "single_owner_team",
                    subject=name,
                    detail=f"Sole owner: {team.get('Owners')}",
                    recommendation="Add a second owner",
                )

            if team.get("MemberCount") == 0:
                self.add_finding(
                    "empty_team",
                    subject=name,
                    recommendation="Archive or delete the team",
                )

            # Archived teams are expected to be quiet
            if team.get("HasActivityData") and not team.get("IsArchived") \
                    and not team.get("ActiveUsers") and not team.get("ChannelMessages"):
                self.add_finding(
                    "inactive_team",
                    subject=name,
                    detail=f"No active users or channel messages in the report period "
                           f"(last activity: {team.get('LastActivityDate') or 'never'})",
                    evidence={"active_users": team.get("ActiveUsers"),
                              "channel_messages": team.get("ChannelMessages")},
                    recommendation="Confirm with the owners and archive if unused",
                )
