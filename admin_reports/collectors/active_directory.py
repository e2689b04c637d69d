"""
Active Directory Collector
Queries users, computers and privileged group membership through the
ActiveDirectory PowerShell module (RSAT), or reads an offline JSON export
produced by the same cmdlets piped to ConvertTo-Json.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import shutil
import subprocess
from pathlib import Path
from typing import Any, Optional

from .base import BaseCollector, CollectorResult
from ..timeutil import days_since, iso

logger = logging.getLogger("admin_reports.collectors.ad")


class PowerShellError(Exception):
    """Raised when a PowerShell query fails or returns unparseable output."""
    pass


PRIVILEGED_GROUPS = [
    "Domain Admins",
    "Enterprise Admins",
    "Schema Admins",
    "Administrators",
    "Account Operators",
    "Backup Operators",
    "Server Operators",
    "Print Operators",
    "DnsAdmins",
    "Group Policy Creator Owners",
]

USER_PROPERTIES = [
    "SamAccountName", "Name", "UserPrincipalName", "Enabled", "LastLogonDate",
    "lastLogonTimestamp", "PasswordLastSet", "PasswordNeverExpires",
    "DistinguishedName", "WhenCreated", "Description",
]

COMPUTER_PROPERTIES = [
    "Name", "DNSHostName", "Enabled", "OperatingSystem", "OperatingSystemVersion",
    "LastLogonDate", "lastLogonTimestamp", "DistinguishedName", "WhenCreated",
]

# Operating systems out of vendor support, matched as substrings
UNSUPPORTED_OS = [
    "Windows XP",
    "Windows Vista",
    "Windows 7",
    "Windows 8",
    "Windows 10",
    "Windows 2000",
    "Windows Server 2003",
    "Windows Server 2008",
    "Windows Server 2012",
]

# Windows 10 long-term servicing editions are still supported
_LONG_TERM_EDITIONS = ("LTSC", "LTSB", "IoT")

OFFLINE_FILES = {
    "users": "users.json",
    "computers": "computers.json",
    "privileged": "privileged_groups.json",
}

_UNESCAPED_COMMA = re.compile(r"(?<!\\),")


def parent_ou(distinguished_name: str) -> str:
    """'CN=Doe\\, John,OU=Staff,DC=corp,DC=local' -> 'OU=Staff,DC=corp,DC=local'."""
    parts = _UNESCAPED_COMMA.split(distinguished_name or "", maxsplit=1)
    return parts[1] if len(parts) == 2 else ""


def is_unsupported_os(operating_system: Optional[str]) -> bool:
    if not operating_system:
        return False
    if any(edition in operating_system for edition in _LONG_TERM_EDITIONS):
        return False
    return any(name in operating_system for name in UNSUPPORTED_OS)


def as_list(value: Any) -> list:
    """ConvertTo-Json emits a bare object for one result and nothing for none."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _ps_string(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def find_powershell() -> Optional[str]:
    return shutil.which("powershell.exe") or shutil.which("powershell") or shutil.which("pwsh")


class ActiveDirectoryCollector(BaseCollector):
    """
    Options:
      input   — folder holding users.json / computers.json / privileged_groups.json
      server  — domain controller passed to -Server
      timeout — seconds per PowerShell call
    """

    name = "ad"
    description = "Active Directory users, computers and privileged groups"

    async def collect(self, result: CollectorResult):
        input_dir = self.options.get("input")
        if input_dir:
            raw = self._load_offline(Path(input_dir), result)
        else:
            raw = await self._query_live(result)

        users = [self._user_row(u) for u in raw.get("users", [])]
        enabled_by_sam = {u["SamAccountName"]: u["Enabled"] for u in users}
        enabled_by_dn = {u["DistinguishedName"]: u["Enabled"] for u in users}

        result.add_data("ad_users", users)
        result.add_data("ad_computers", [self._computer_row(c) for c in raw.get("computers", [])])
        result.add_data("privileged_members", [
            self._member_row(m, enabled_by_sam, enabled_by_dn)
            for m in raw.get("privileged", [])
        ])

    # ── Sources ────────────────────────────────────────────────────────────

    def _load_offline(self, folder: Path, result: CollectorResult) -> dict:
        raw = {}
        for key, filename in OFFLINE_FILES.items():
            path = folder / filename
            if not path.exists():
                result.add_skipped(key, f"{path} not found")
                continue
            try:
                raw[key] = as_list(json.loads(path.read_text(encoding="utf-8-sig")))
            except json.JSONDecodeError as e:
                result.add_error(f"{path} is not valid JSON: {e}")
        return raw

    async def _query_live(self, result: CollectorResult) -> dict:
        server = self.options.get("server")
        server_arg = f" -Server {_ps_string(server)}" if server else ""
        groups = ",".join(_ps_string(g) for g in PRIVILEGED_GROUPS)
        scripts = {
            "users": (
                f"Get-ADUser -Filter *{server_arg} -Properties {','.join(USER_PROPERTIES)} "
                f"| Select-Object {','.join(USER_PROPERTIES)}"
            ),
            "computers": (
                f"Get-ADComputer -Filter *{server_arg} -Properties {','.join(COMPUTER_PROPERTIES)} "
                f"| Select-Object {','.join(COMPUTER_PROPERTIES)}"
            ),
            "privileged": (
                f"& {{ foreach ($g in @({groups})) {{ "
                f"Get-ADGroupMember -Identity $g -Recursive{server_arg} -ErrorAction SilentlyContinue "
                f"| ForEach-Object {{ [pscustomobject]@{{ Group = $g; "
                f"SamAccountName = $_.SamAccountName; Name = $_.name; "
                f"ObjectClass = $_.objectClass; DistinguishedName = $_.distinguishedName }} }} }} }}"
            ),
        }
        raw = {}
        for key, script in scripts.items():
            try:
                raw[key] = as_list(await self.run_powershell_json(script))
            except PowerShellError as e:
                result.add_error(f"AD query '{key}' failed: {e}")
        return raw

    async def run_powershell_json(self, script: str) -> Any:
        """Run an AD cmdlet pipeline and parse its ConvertTo-Json output."""
        exe = find_powershell()
        if not exe:
            raise PowerShellError(
                "PowerShell with the ActiveDirectory module was not found; "
                "use --input with an offline export instead"
            )
        full_script = (
            "Import-Module ActiveDirectory -ErrorAction Stop; "
            f"{script} | ConvertTo-Json -Depth 3 -Compress"
        )
        cmd = [exe, "-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass",
               "-Command", full_script]
        timeout = self.options.get("timeout", 300)
        logger.debug(f"PS> {script[:120]}{'...' if len(script) > 120 else ''}")
        try:
            proc = await asyncio.to_thread(
                subprocess.run, cmd, capture_output=True, text=True, timeout=timeout
            )
        except subprocess.TimeoutExpired:
            raise PowerShellError(f"PowerShell timed out after {timeout}s")
        except OSError as e:
            raise PowerShellError(f"Could not start PowerShell: {e}")

        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            raise PowerShellError(stderr[:300] or f"exit code {proc.returncode}")

        out = (proc.stdout or "").strip()
        if not out:
            return []
        try:
            return json.loads(out)
        except json.JSONDecodeError as e:
            raise PowerShellError(f"Unparseable PowerShell output: {e}")

    # ── Reshaping ──────────────────────────────────────────────────────────

    def _last_logon(self, obj: dict) -> str:
        # LastLogonDate is the cmdlet's rendering of lastLogonTimestamp
        return iso(obj.get("LastLogonDate")) or iso(obj.get("lastLogonTimestamp"))

    def _is_stale(self, enabled: bool, last_logon: str, created: Any) -> bool:
        if not enabled:
            return False
        idle = days_since(last_logon) if last_logon else days_since(created)
        return idle is not None and idle >= self.config.stale_ad_days

    def _user_row(self, u: dict) -> dict:
        last_logon = self._last_logon(u)
        enabled = bool(u.get("Enabled"))
        dn = u.get("DistinguishedName") or ""
        return {
            "SamAccountName": u.get("SamAccountName"),
            "Name": u.get("Name"),
            "UserPrincipalName": u.get("UserPrincipalName"),
            "Enabled": enabled,
            "LastLogon": last_logon,
            "DaysSinceLogon": days_since(last_logon),
            "PasswordLastSet": iso(u.get("PasswordLastSet")),
            "PasswordAgeDays": days_since(u.get("PasswordLastSet")),
            "PasswordNeverExpires": bool(u.get("PasswordNeverExpires")),
            "WhenCreated": iso(u.get("WhenCreated")),
            "OU": parent_ou(dn),
            "DistinguishedName": dn,
            "Description": u.get("Description"),
            "IsStale": self._is_stale(enabled, last_logon, u.get("WhenCreated")),
        }

    def _computer_row(self, c: dict) -> dict:
        last_logon = self._last_logon(c)
        enabled = bool(c.get("Enabled"))
        dn = c.get("DistinguishedName") or ""
        return {
            "Name": c.get("Name"),
            "DNSHostName": c.get("DNSHostName"),
            "Enabled": enabled,
            "OperatingSystem": c.get("OperatingSystem"),
            "OperatingSystemVersion": c.get("OperatingSystemVersion"),
            "LastLogon": last_logon,
            "DaysSinceLogon": days_since(last_logon),
            "WhenCreated": iso(c.get("WhenCreated")),
            "OU": parent_ou(dn),
            "DistinguishedName": dn,
            "IsStale": self._is_stale(enabled, last_logon, c.get("WhenCreated")),
            "UnsupportedOS": is_unsupported_os(c.get("OperatingSystem")),
        }

    def _member_row(self, m: dict, enabled_by_sam: dict, enabled_by_dn: dict) -> dict:
        sam = m.get("SamAccountName")
        dn = m.get("DistinguishedName") or ""
        enabled = enabled_by_sam.get(sam, enabled_by_dn.get(dn))
        return {
            "Group": m.get("Group"),
            "SamAccountName": sam,
            "Name": m.get("Name"),
            "ObjectClass": m.get("ObjectClass"),
            "Enabled": enabled,
            "DistinguishedName": dn,
        }
