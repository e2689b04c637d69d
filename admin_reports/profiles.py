"""
Tenant Profile Manager — named connection profiles.

Profiles are stored in:
    ~/.admin_reports/profiles.json

A profile carries the tenant/app identifiers for the Graph reports and,
optionally, the domain controller the AD report should query. Admins who
look after several tenants switch between them with `--profile <name>`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger("admin_reports.profiles")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PROFILES_DIR = Path.home() / ".admin_reports"
PROFILES_FILE = PROFILES_DIR / "profiles.json"


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class TenantProfile:
    """A single named tenant profile."""
    name: str
    tenant_id: str
    client_id: str
    cert_path: str = "./cert.pfx"
    tenant_display_name: str = ""
    ad_server: str = ""                # Domain controller for the AD report
    notes: str = ""

    def resolve_cert_path(self) -> str:
        """Return absolute cert path, resolving ~ and relative paths."""
        p = Path(self.cert_path).expanduser()
        if not p.is_absolute():
            p = Path.cwd() / p
        return str(p)

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "cert_path": self.cert_path,
            "tenant_display_name": self.tenant_display_name,
            "ad_server": self.ad_server,
            "notes": self.notes,
        }


@dataclass
class ProfileStore:
    """The set of tenant profiles persisted in a JSON file."""
    profiles: dict[str, TenantProfile] = field(default_factory=dict)
    default_profile: str = ""
    path: Path = PROFILES_FILE

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ProfileStore":
        """Load profiles from disk. Returns an empty store if the file is absent."""
        path = path or PROFILES_FILE
        store = cls(path=path)
        if not path.exists():
            return store
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            store.default_profile = data.get("default_profile", "")
            for name, pdata in data.get("profiles", {}).items():
                store.profiles[name] = TenantProfile(
                    name=name,
                    tenant_id=pdata["tenant_id"],
                    client_id=pdata["client_id"],
                    cert_path=pdata.get("cert_path", "./cert.pfx"),
                    tenant_display_name=pdata.get("tenant_display_name", ""),
                    ad_server=pdata.get("ad_server", ""),
                    notes=pdata.get("notes", ""),
                )
        except (json.JSONDecodeError, KeyError) as e:
            logger.warning(f"Ignoring unreadable profile file {path}: {e}")
            return cls(path=path)
        return store

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "default_profile": self.default_profile,
            "profiles": {name: p.to_dict() for name, p in self.profiles.items()},
        }
        self.path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")

    def add(self, profile: TenantProfile, set_default: bool = False) -> None:
        """Add or overwrite a profile."""
        self.profiles[profile.name] = profile
        if set_default or not self.default_profile:
            self.default_profile = profile.name
        self.save()

    def remove(self, name: str) -> bool:
        """Remove a profile by name. Returns True if it existed."""
        if name not in self.profiles:
            return False
        del self.profiles[name]
        if self.default_profile == name:
            self.default_profile = next(iter(self.profiles), "")
        self.save()
        return True

    def get(self, name: str) -> Optional[TenantProfile]:
        """Get a profile by name (case-insensitive)."""
        key = name.lower()
        for pname, profile in self.profiles.items():
            if pname.lower() == key:
                return profile
        return None

    def get_default(self) -> Optional[TenantProfile]:
        if self.default_profile:
            return self.profiles.get(self.default_profile)
        if self.profiles:
            return next(iter(self.profiles.values()))
        return None

    def set_default(self, name: str) -> bool:
        if name not in self.profiles:
            return False
        self.default_profile = name
        self.save()
        return True

    def list_profiles(self) -> list[TenantProfile]:
        return sorted(self.profiles.values(), key=lambda p: p.name)


def resolve_profile(
    profile_name: Optional[str] = None,
    path: Optional[Path] = None,
) -> Optional[TenantProfile]:
    """
    Look up a tenant profile by name.
    If no name is given, returns the default profile.
    """
    store = ProfileStore.load(path)
    if profile_name:
        return store.get(profile_name)
    return store.get_default()
