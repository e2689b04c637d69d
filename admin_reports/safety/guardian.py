"""
Read-only guard for outbound Graph requests.
Every report is an inventory; nothing here is allowed to change a tenant.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("admin_reports.safety")

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
READ_METHODS = {"GET", "HEAD", "OPTIONS"}

# Graph $batch is a POST but only carries the sub-requests we put in it
BATCH_ENDPOINT = re.compile(r"/\$batch$")

# Action suffixes that must never be reached, whatever the method
BLOCKED_URL_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"/assignLicense$",
        r"/resetPassword$",
        r"/revokeSignInSessions$",
        r"/addPassword$",
        r"/removePassword$",
        r"/archive$",
        r"/unarchive$",
        r"/wipe$",
        r"/retire$",
        r"/sendMail$",
        r"/\$ref$",
    )
]


class SafetyViolation(Exception):
    """Raised when a write operation is attempted."""
    pass


class ReadOnlyGuard:
    """
    Validates every outbound request before it leaves the Graph client.
    Keeps a record of the checks performed and any violations.
    """

    def __init__(self):
        self.violations: list[dict] = []
        self.checks_performed: int = 0
        self.started_at: str = datetime.now(timezone.utc).isoformat()

    def validate_request(self, method: str, url: str, body: Optional[dict] = None) -> bool:
        """Return True if the request is read-only, raise SafetyViolation otherwise."""
        self.checks_performed += 1
        method_upper = method.upper()

        path = url.split("?", 1)[0]
        for pattern in BLOCKED_URL_PATTERNS:
            if pattern.search(path):
                self._record_violation(method_upper, url, "Blocked action URL")
                raise SafetyViolation(f"Blocked action URL: {method_upper} {url}")

        if method_upper in READ_METHODS:
            return True

        if method_upper == "POST" and BATCH_ENDPOINT.search(path):
            for sub in (body or {}).get("requests", []):
                sub_method = str(sub.get("method", "GET")).upper()
                if sub_method not in READ_METHODS:
                    self._record_violation(
                        method_upper, url, f"Batch carries a {sub_method} sub-request"
                    )
                    raise SafetyViolation(
                        f"Batch sub-request {sub.get('id')} uses {sub_method}"
                    )
                self.validate_request(sub_method, str(sub.get("url", "")))
            return True

        self._record_violation(method_upper, url, "Write HTTP method blocked")
        raise SafetyViolation(f"Write method blocked: {method_upper} {url}")

    def _record_violation(self, method: str, url: str, reason: str):
        self.violations.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": method,
            "url": url,
            "reason": reason,
        })
        logger.critical(f"SAFETY VIOLATION: {reason} — {method} {url}")

    def audit_record(self) -> dict:
        return {
            "mode": "READ-ONLY",
            "started_at": self.started_at,
            "checks_performed": self.checks_performed,
            "violations_detected": len(self.violations),
            "violations": self.violations,
            "status": "CLEAN" if not self.violations else "VIOLATIONS_DETECTED",
        }
