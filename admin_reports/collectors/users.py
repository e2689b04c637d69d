"""
User & Licence Collector
Enumerates users with sign-in activity and licence assignments, plus the
tenant's subscribed SKUs with their consumption.
"""

from __future__ import annotations

import asyncio
import logging

from .base import BaseCollector, CollectorResult
from ..graph.client import GraphAPIError
from ..timeutil import days_since, iso

logger = logging.getLogger("admin_reports.collectors.users")


# Friendly names for the SKUs admins ask about most. Anything else is
# reported under its skuPartNumber.
SKU_FRIENDLY_NAMES = {
    "ENTERPRISEPACK": "Office 365 E3",
    "ENTERPRISEPREMIUM": "Office 365 E5",
    "STANDARDPACK": "Office 365 E1",
    "DESKLESSPACK": "Office 365 F3",
    "SPE_E3": "Microsoft 365 E3",
    "SPE_E5": "Microsoft 365 E5",
    "SPE_F1": "Microsoft 365 F3",
    "O365_BUSINESS_ESSENTIALS": "Microsoft 365 Business Basic",
    "O365_BUSINESS_PREMIUM": "Microsoft 365 Business Standard",
    "SPB": "Microsoft 365 Business Premium",
    "EXCHANGESTANDARD": "Exchange Online (Plan 1)",
    "EXCHANGEENTERPRISE": "Exchange Online (Plan 2)",
    "EXCHANGEARCHIVE_ADDON": "Exchange Online Archiving",
    "EMS": "Enterprise Mobility + Security E3",
    "EMSPREMIUM": "Enterprise Mobility + Security E5",
    "AAD_PREMIUM": "Microsoft Entra ID P1",
    "AAD_PREMIUM_P2": "Microsoft Entra ID P2",
    "POWER_BI_PRO": "Power BI Pro",
    "POWER_BI_STANDARD": "Power BI (free)",
    "PROJECTPROFESSIONAL": "Project Plan 3",
    "VISIOCLIENT": "Visio Plan 2",
    "MCOEV": "Teams Phone Standard",
    "MCOMEETADV": "Microsoft 365 Audio Conferencing",
    "PHONESYSTEM_VIRTUALUSER": "Teams Phone Resource Account",
    "Microsoft_Teams_Rooms_Pro": "Teams Rooms Pro",
    "FLOW_FREE": "Power Automate Free",
    "STREAM": "Microsoft Stream",
    "WINDOWS_STORE": "Windows Store for Business",
}

USER_SELECT_BASE = (
    "id,displayName,userPrincipalName,mail,accountEnabled,userType,"
    "createdDateTime,onPremisesSyncEnabled,assignedLicenses,"
    "department,jobTitle,usageLocation"
)
# Selecting signInActivity needs AuditLog.Read.All and Entra ID P1; without
# them Graph rejects the whole request.
USER_SELECT = USER_SELECT_BASE + ",signInActivity"


def friendly_sku_name(part_number: str) -> str:
    return SKU_FRIENDLY_NAMES.get(part_number, part_number)


class UserLicenseCollector(BaseCollector):
    name = "users"
    description = "Users, sign-in activity and licence assignments"
    cacheable = True

    async def collect(self, result: CollectorResult):
        skus, (users, sign_in_selected) = await asyncio.gather(
            self.safe_get_all("subscribedSkus", result, skip_top=True),
            self._fetch_users(result),
        )

        sku_names = {
            s.get("skuId"): friendly_sku_name(s.get("skuPartNumber", ""))
            for s in skus
        }
        result.add_data("licenses", [self._license_row(s) for s in skus])
        result.add_data("users", [self._user_row(u, sku_names) for u in users])

        if not sign_in_selected or (users and not any(u.get("signInActivity") for u in users)):
            result.add_warning(
                "No signInActivity returned — AuditLog.Read.All is required "
                "for last sign-in dates; dormant checks will be skipped"
            )
            result.add_data("_sign_in_available", False)
        else:
            result.add_data("_sign_in_available", True)

    async def _fetch_users(self, result: CollectorResult) -> tuple[list, bool]:
        """Users with signInActivity, or without it when that field is denied."""
        try:
            users = await self._require_graph().get_all_pages(
                "users",
                params={"$select": USER_SELECT},
                beta=self.config.use_beta,
            )
            result.metadata["endpoints_queried"] += 1
            return users, True
        except GraphAPIError as e:
            if e.status_code != 403:
                result.add_error(f"Failed to paginate users: {e}")
                return [], True
            self._note_gap("users?$select=signInActivity", result, str(e))
            logger.info("Retrying users without signInActivity")

        users = await self.safe_get_all(
            "users",
            result,
            params={"$select": USER_SELECT_BASE},
            beta=self.config.use_beta,
        )
        return users, False

    def _license_row(self, sku: dict) -> dict:
        units = sku.get("prepaidUnits") or {}
        enabled = units.get("enabled", 0) or 0
        consumed = sku.get("consumedUnits", 0) or 0
        part = sku.get("skuPartNumber", "")
        return {
            "SkuPartNumber": part,
            "License": friendly_sku_name(part),
            "SkuId": sku.get("skuId"),
            "CapabilityStatus": sku.get("capabilityStatus"),
            "Enabled": enabled,
            "Consumed": consumed,
            "Available": max(0, enabled - consumed),
            "Suspended": units.get("suspended", 0) or 0,
            "Warning": units.get("warning", 0) or 0,
            "ConsumedPct": round(consumed / enabled * 100, 1) if enabled else None,
        }

    def _user_row(self, user: dict, sku_names: dict) -> dict:
        sign_in = user.get("signInActivity") or {}
        last_interactive = sign_in.get("lastSignInDateTime")
        last_non_interactive = sign_in.get("lastNonInteractiveSignInDateTime")
        # Either kind of sign-in proves the account is alive
        candidates = [d for d in (iso(last_interactive), iso(last_non_interactive)) if d]
        last_any = max(candidates) if candidates else ""
        idle_days = days_since(last_any)
        if idle_days is None:
            # Never signed in: the account has been idle since it was created
            age = days_since(user.get("createdDateTime"))
            dormant = age is not None and age >= self.config.dormant_days
        else:
            dormant = idle_days >= self.config.dormant_days
        licenses = [
            sku_names.get(lic.get("skuId"), lic.get("skuId") or "")
            for lic in user.get("assignedLicenses") or []
        ]
        return {
            "UserPrincipalName": user.get("userPrincipalName"),
            "DisplayName": user.get("displayName"),
            "Mail": user.get("mail"),
            "UserType": user.get("userType") or "Member",
            "AccountEnabled": user.get("accountEnabled"),
            "Department": user.get("department"),
            "JobTitle": user.get("jobTitle"),
            "UsageLocation": user.get("usageLocation"),
            "CreatedDateTime": iso(user.get("createdDateTime")),
            "LastSignIn": iso(last_interactive),
            "LastNonInteractiveSignIn": iso(last_non_interactive),
            "DaysSinceSignIn": idle_days,
            "IsDormant": dormant,
            "OnPremisesSync": bool(user.get("onPremisesSyncEnabled")),
            "LicenseCount": len(licenses),
            "Licenses": "; ".join(sorted(licenses)),
        }
