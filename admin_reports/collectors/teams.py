"""
Microsoft Teams Collector
Enumerates Teams-enabled groups, then pulls owners, members, channels and
archive state per team through $batch, and joins the team activity report.
"""

from __future__ import annotations

import asyncio
import logging

from .base import BaseCollector, CollectorResult
from ..graph.client import GraphAPIError
from ..timeutil import iso

logger = logging.getLogger("admin_reports.collectors.teams")

TEAM_GROUP_SELECT = "id,displayName,description,visibility,createdDateTime,mail"

# Requests issued per team, in this order
PER_TEAM_ENDPOINTS = (
    "groups/{id}/owners?$select=id,userPrincipalName,displayName",
    "groups/{id}/members?$select=id&$top=999",
    "teams/{id}?$select=id,isArchived",
    "teams/{id}/channels?$select=id,displayName,membershipType",
)


class TeamsCollector(BaseCollector):
    name = "teams"
    description = "Teams inventory: owners, members, channels, activity"
    cacheable = True

    async def collect(self, result: CollectorResult):
        groups, activity_rows = await asyncio.gather(
            self.safe_get_all(
                "groups",
                result,
                params={
                    "$filter": "resourceProvisioningOptions/Any(x:x eq 'Team')",
                    "$select": TEAM_GROUP_SELECT,
                    "$count": "true",
                },
            ),
            self.safe_report(
                f"reports/getTeamsTeamActivityDetail(period='{self.config.report_period}')",
                result,
            ),
        )

        activity = {r.get("Team Id"): r for r in activity_rows if r.get("Team Id")}
        if not activity_rows:
            result.add_skipped("team_activity", "Teams activity report returned no rows")

        details = await self._fetch_details(groups, result)
        result.add_data("teams", [
            self._team_row(group, details.get(group.get("id"), {}), activity.get(group.get("id")))
            for group in groups
        ])

    async def _fetch_details(self, groups: list, result: CollectorResult) -> dict:
        ids = [g.get("id") for g in groups if g.get("id")]
        endpoints = [ep.format(id=tid) for tid in ids for ep in PER_TEAM_ENDPOINTS]
        if not endpoints:
            return {}
        try:
            responses = await self._require_graph().batch_get(endpoints)
        except GraphAPIError as e:
            result.add_error(f"Team detail batch failed: {e}")
            return {}
        result.metadata["endpoints_queried"] += len(endpoints)

        width = len(PER_TEAM_ENDPOINTS)
        details = {}
        failures = 0
        for i, tid in enumerate(ids):
            owners, members, team, channels = responses[i * width:(i + 1) * width]
            failures += sum(1 for r in (owners, members, team, channels) if r.get("_error"))
            details[tid] = {
                "owners": owners,
                "members": members,
                "team": team,
                "channels": channels,
            }
        if failures:
            result.add_warning(f"{failures} team detail sub-requests failed")
        return details

    def _team_row(self, group: dict, detail: dict, activity: dict | None) -> dict:
        owners = detail.get("owners") or {}
        members = detail.get("members") or {}
        team = detail.get("team") or {}
        channels = detail.get("channels") or {}

        owner_list = [] if owners.get("_error") else owners.get("value", [])
        channel_list = [] if channels.get("_error") else channels.get("value", [])
        membership = {}
        for c in channel_list:
            kind = c.get("membershipType") or "standard"
            membership[kind] = membership.get(kind, 0) + 1

        activity = activity or {}
        return {
            "TeamId": group.get("id"),
            "DisplayName": group.get("displayName"),
            "Mail": group.get("mail"),
            "Visibility": group.get("visibility"),
            "CreatedDateTime": iso(group.get("createdDateTime")),
            "IsArchived": bool(team.get("isArchived")) if not team.get("_error") else None,
            "OwnerCount": None if owners.get("_error") else len(owner_list),
            "Owners": "; ".join(
                o.get("userPrincipalName") or o.get("displayName") or o.get("id", "")
                for o in owner_list
            ),
            "MemberCount": None if members.get("_error") else len(members.get("value", [])),
            "MemberCountTruncated": bool(members.get("@odata.nextLink")),
            "ChannelCount": None if channels.get("_error") else len(channel_list),
            "PrivateChannels": membership.get("private", 0),
            "SharedChannels": membership.get("shared", 0),
            "LastActivityDate": iso(activity.get("Last Activity Date")),
            "ActiveUsers": int(activity["Active Users"]) if activity.get("Active Users", "").isdigit() else None,
            "ChannelMessages": int(activity["Channel Messages"]) if activity.get("Channel Messages", "").isdigit() else None,
            "HasActivityData": bool(activity),
        }
