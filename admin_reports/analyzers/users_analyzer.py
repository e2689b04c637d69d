"""
User & Licence Analyzer
Analyzes: licences held by disabled or dormant accounts, guests that never
signed in, unlicensed members, SKUs running out of seats.
"""

from __future__ import annotations

import logging
from typing import Any

from .base import BaseAnalyzer
from ..timeutil import days_since

logger = logging.getLogger("admin_reports.analyzers.users")

SKU_CAPACITY_PCT = 95.0


class UserLicenseAnalyzer(BaseAnalyzer):
    name = "users_analyzer"
    report = "users"
    description = "Licence waste and account hygiene"

    TITLES = {
        "disabled_licensed": "Disabled account still licensed",
        "dormant_licensed": "Dormant licensed account",
        "guest_never_signed_in": "Guest account never signed in",
        "unlicensed_member": "Enabled member without a licence",
        "sku_near_capacity": "Licence SKU nearly exhausted",
    }
    SEVERITIES = {
        "disabled_licensed": "medium",
        "dormant_licensed": "medium",
        "guest_never_signed_in": "low",
        "unlicensed_member": "informational",
        "sku_near_capacity": "low",
    }
    DEDUCTIONS = {
        "disabled_licensed": 2,
        "dormant_licensed": 1,
        "guest_never_signed_in": 0.5,
        "unlicensed_member": 0,
        "sku_near_capacity": 3,
    }

    def _analyze(self, data: dict[str, Any]):
        users = data.get("users", [])
        sign_in_available = data.get("_sign_in_available", True)

        for user in users:
            self._check_user(user, sign_in_available)

        for sku in data.get("licenses", []):
            pct = sku.get("ConsumedPct")
            if pct is not None and pct > SKU_CAPACITY_PCT:
                self.add_finding(
                    "sku_near_capacity",
                    subject=sku.get("License") or sku.get("SkuPartNumber", ""),
                    detail=f"{sku.get('Consumed')} of {sku.get('Enabled')} seats consumed ({pct}%)",
                    evidence={"sku": sku.get("SkuPartNumber"), "available": sku.get("Available")},
                    recommendation="Reclaim licences from disabled/dormant accounts or buy more seats",
                )

    def _check_user(self, user: dict, sign_in_available: bool):
        upn = user.get("UserPrincipalName") or ""
        licensed = (user.get("LicenseCount") or 0) > 0
        enabled = bool(user.get("AccountEnabled"))
        is_guest = user.get("UserType") == "Guest"

        if licensed and not enabled:
            self.add_finding(
                "disabled_licensed",
                subject=upn,
                detail=f"Licences: {user.get('Licenses')}",
                recommendation="Remove licences from disabled accounts",
            )
            return

        if not sign_in_available:
            # Without signInActivity every account would look dormant
            if enabled and not licensed and not is_guest:
                self._unlicensed(user)
            return

        if licensed and enabled and user.get("IsDormant"):
            idle = user.get("DaysSinceSignIn")
            self.add_finding(
                "dormant_licensed",
                subject=upn,
                detail=f"No sign-in for {idle} days" if idle is not None
                else f"Never signed in; created {days_since(user.get('CreatedDateTime'))} days ago",
                evidence={"last_sign_in": user.get("LastSignIn"),
                          "last_non_interactive": user.get("LastNonInteractiveSignIn")},
                recommendation="Confirm the account is still needed; disable and unlicense if not",
            )

        if is_guest and enabled and user.get("DaysSinceSignIn") is None:
            age = days_since(user.get("CreatedDateTime"))
            threshold = self.setting("dormant_days", 90)
            if age is None or age >= threshold:
                self.add_finding(
                    "guest_never_signed_in",
                    subject=upn,
                    detail=f"Invited {age} days ago, never signed in" if age is not None
                    else "Never signed in",
                    recommendation="Remove unredeemed guest invitations",
                )

        if enabled and not licensed and not is_guest:
            self._unlicensed(user)

    def _unlicensed(self, user: dict):
        self.add_finding(
            "unlicensed_member",
            subject=user.get("UserPrincipalName") or "",
            detail="Enabled member account with no licence (service or room account?)",
        )
