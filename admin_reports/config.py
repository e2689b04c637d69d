"""
Configuration module for the admin reporting toolkit.
Defines tunable thresholds, Graph API settings, and output locations.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class ConfigError(Exception):
    """Raised when a configuration file or CLI parameter set is invalid."""
    pass


# ─── Tenant Authentication ───────────────────────────────────────────────────

@dataclass
class CertificateAuth:
    """Certificate-based app-only authentication configuration."""
    tenant_id: str
    client_id: str
    certificate_path: str          # PFX file, raw or base64 text
    certificate_password: str = "" # Falls back to env var, then prompt

@dataclass
class DelegatedAuth:
    """Delegated (device code) authentication configuration."""
    tenant_id: str
    client_id: str
    scopes: list[str] = field(default_factory=lambda: [
        "User.Read.All",
        "AuditLog.Read.All",
        "Reports.Read.All",
        "Group.Read.All",
        "Organization.Read.All",
    ])

@dataclass
class SecretAuth:
    """Client-secret app-only authentication configuration."""
    tenant_id: str
    client_id: str
    client_secret: str = ""        # Falls back to ADMIN_REPORTS_CLIENT_SECRET

@dataclass
class AuthConfig:
    """Authentication configuration: certificate, delegated or secret."""
    mode: str = "certificate"
    certificate: Optional[CertificateAuth] = None
    delegated: Optional[DelegatedAuth] = None
    secret: Optional[SecretAuth] = None


# ─── Graph API Settings ─────────────────────────────────────────────────────

GRAPH_BASE_URL = "https://graph.microsoft.com"
GRAPH_API_VERSION = "v1.0"
GRAPH_BETA_VERSION = "beta"

MAX_CONCURRENT_REQUESTS = 4
MAX_RETRIES = 5
INITIAL_BACKOFF_SECONDS = 2.0
MAX_BACKOFF_SECONDS = 120.0
BACKOFF_MULTIPLIER = 2.0

DEFAULT_PAGE_SIZE = 999
MAX_PAGES_PER_ENDPOINT = 10000

BATCH_SIZE = 20                   # Graph $batch max is 20 requests

REPORT_PERIODS = ("D7", "D30", "D90", "D180")


# ─── Collection Settings ────────────────────────────────────────────────────

@dataclass
class CollectionConfig:
    """Thresholds and knobs shared by the collectors and analyzers."""
    dormant_days: int = 90                 # No sign-in for N days = dormant
    mailbox_quota_warning_pct: float = 90.0
    inactive_mailbox_days: int = 90
    stale_ad_days: int = 90
    pki_expiry_warning_days: int = 90
    pki_expiry_notice_days: int = 365
    crl_warning_hours: int = 48
    share_scan_workers: int = 8
    share_scan_max_depth: int = 5
    report_period: str = "D30"
    use_beta: bool = False

    def validate(self):
        if self.share_scan_workers < 1:
            raise ConfigError("share_scan_workers must be a positive integer")
        if self.share_scan_max_depth < 0:
            raise ConfigError("share_scan_max_depth must not be negative")
        if self.report_period not in REPORT_PERIODS:
            raise ConfigError(
                f"report_period must be one of {', '.join(REPORT_PERIODS)}"
            )
        if not 0 < self.mailbox_quota_warning_pct <= 100:
            raise ConfigError("mailbox_quota_warning_pct must be in (0, 100]")
        if self.pki_expiry_warning_days > self.pki_expiry_notice_days:
            raise ConfigError(
                "pki_expiry_warning_days must not exceed pki_expiry_notice_days"
            )


# ─── Output Configuration ───────────────────────────────────────────────────

OUTPUT_FORMATS = ("csv", "xlsx", "txt", "json")


@dataclass
class OutputConfig:
    """Output directory and format settings."""
    base_dir: str = ""
    timestamp: str = ""
    formats: list[str] = field(default_factory=lambda: list(OUTPUT_FORMATS))

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        if not self.base_dir:
            self.base_dir = os.path.join(os.getcwd(), "admin_reports_output")

    def run_dir(self, report: str) -> Path:
        return Path(self.base_dir) / f"{report}_{self.timestamp}"


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass
class ToolkitConfig:
    """Top-level configuration for every report."""
    auth: AuthConfig = field(default_factory=AuthConfig)
    collection: CollectionConfig = field(default_factory=CollectionConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    cache_enabled: bool = True
    cache_ttl_hours: int = 4
    verbose: bool = False

    @classmethod
    def from_file(cls, path: str | Path) -> "ToolkitConfig":
        """Load configuration from a JSON file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise ConfigError(f"Config file not found: {path}")
        except json.JSONDecodeError as e:
            raise ConfigError(f"Config file {path} is not valid JSON: {e}")

        config = cls()
        if "auth" in data:
            auth_data = data["auth"]
            config.auth.mode = auth_data.get("mode", "certificate")
            try:
                if "certificate" in auth_data:
                    c = auth_data["certificate"]
                    config.auth.certificate = CertificateAuth(
                        tenant_id=c["tenant_id"],
                        client_id=c["client_id"],
                        certificate_path=c.get("certificate_path", "./cert.pfx"),
                        certificate_password=c.get("certificate_password", ""),
                    )
                if "delegated" in auth_data:
                    d = auth_data["delegated"]
                    config.auth.delegated = DelegatedAuth(
                        tenant_id=d["tenant_id"],
                        client_id=d["client_id"],
                    )
                if "secret" in auth_data:
                    s = auth_data["secret"]
                    config.auth.secret = SecretAuth(
                        tenant_id=s["tenant_id"],
                        client_id=s["client_id"],
                        client_secret=s.get("client_secret", ""),
                    )
            except KeyError as e:
                raise ConfigError(f"Missing auth setting in {path}: {e}")
        for section, target in (
            ("collection", config.collection),
            ("output", config.output),
        ):
            for k, v in data.get(section, {}).items():
                if hasattr(target, k):
                    setattr(target, k, v)
        config.cache_enabled = data.get("cache_enabled", True)
        config.cache_ttl_hours = data.get("cache_ttl_hours", 4)
        config.verbose = data.get("verbose", False)
        config.collection.validate()
        return config


# ─── Required Graph API Permissions (read-only) ─────────────────────────────

REQUIRED_PERMISSIONS = {
    "User.Read.All": "Read user profiles and licence assignments",
    "AuditLog.Read.All": "Read signInActivity on users",
    "Organization.Read.All": "Read subscribed SKUs",
    "Reports.Read.All": "Read mailbox and Teams usage reports",
    "Group.Read.All": "Enumerate Teams-enabled groups, owners and members",
    "GroupMember.Read.All": "Read team membership",
    "Team.ReadBasic.All": "Read team archive state",
    "Channel.ReadBasic.All": "Read team channels",
}
