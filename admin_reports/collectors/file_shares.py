"""
File Share Permission Collector
Walks share roots breadth-first, reading folder ACLs in parallel worker
threads. On Windows ACLs come from `icacls`; elsewhere from POSIX mode bits.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import stat
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .base import BaseCollector, CollectorResult

logger = logging.getLogger("admin_reports.collectors.shares")

INHERITANCE_FLAGS = {"OI", "CI", "IO", "NP"}

_ACE_LINE = re.compile(r"^(?P<identity>.+?):(?P<perms>(?:\([^)]*\))+)$")
_PAREN_GROUP = re.compile(r"\(([^)]*)\)")


@dataclass
class AclEntry:
    identity: str
    rights: str
    access_type: str = "Allow"
    inherited: bool = False
    flags: list[str] = field(default_factory=list)


@dataclass
class FolderAcl:
    owner: str = ""
    entries: list[AclEntry] = field(default_factory=list)


class AclReadError(Exception):
    """Raised when a folder's ACL cannot be read."""
    pass


def parse_ace(text: str) -> Optional[AclEntry]:
    """Parse one 'IDENTITY:(flags)(rights)' fragment of icacls output."""
    m = _ACE_LINE.match(text.strip())
    if not m:
        return None
    groups = _PAREN_GROUP.findall(m.group("perms"))
    flags = [g for g in groups if g in INHERITANCE_FLAGS]
    rights = [g for g in groups if g not in INHERITANCE_FLAGS and g not in ("I", "DENY")]
    return AclEntry(
        identity=m.group("identity").strip(),
        rights=",".join(rights),
        access_type="Deny" if "DENY" in groups else "Allow",
        inherited="I" in groups,
        flags=flags,
    )


def parse_icacls(output: str, path: str) -> list[AclEntry]:
    """
    Parse `icacls <path>` output:

        D:\\Shares\\Finance BUILTIN\\Administrators:(OI)(CI)(F)
                           CONTOSO\\Finance:(OI)(CI)(M)
                           Everyone:(DENY)(W)

        Successfully processed 1 files; Failed processing 0 files
    """
    entries = []
    for line in output.splitlines():
        text = line.strip()
        if not text or text.startswith(("Successfully processed", "Failed processing")):
            continue
        if text.lower().startswith(path.lower()):
            text = text[len(path):].strip()
        entry = parse_ace(text)
        if entry:
            entries.append(entry)
        else:
            logger.debug(f"Unparsed icacls line for {path}: {line!r}")
    return entries


class AclReader(ABC):
    @abstractmethod
    def read(self, path: Path) -> FolderAcl:
        raise NotImplementedError


class IcaclsAclReader(AclReader):
    """NTFS ACLs via the built-in icacls tool."""

    def __init__(self, timeout: int = 60):
        self.timeout = timeout

    def read(self, path: Path) -> FolderAcl:
        try:
            proc = subprocess.run(
                ["icacls", str(path)],
                capture_output=True, text=True, errors="replace", timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise AclReadError(f"icacls failed: {e}")
        if proc.returncode != 0:
            raise AclReadError((proc.stderr or proc.stdout or "").strip()[:200] or
                               f"icacls exit code {proc.returncode}")
        return FolderAcl(entries=parse_icacls(proc.stdout, str(path)))


# Mode-bit triplets rendered with icacls' short rights codes
_POSIX_RIGHTS = {7: "F", 6: "RW", 5: "RX", 4: "R", 3: "WX", 2: "W", 1: "X"}


class PosixAclReader(AclReader):
    """Owner / group / other mode bits, with 'other' reported as Everyone."""

    def read(self, path: Path) -> FolderAcl:
        import grp
        import pwd

        try:
            st = os.stat(path)
        except OSError as e:
            raise AclReadError(str(e))

        try:
            owner = pwd.getpwuid(st.st_uid).pw_name
        except KeyError:
            owner = str(st.st_uid)
        try:
            group = grp.getgrgid(st.st_gid).gr_name
        except KeyError:
            group = str(st.st_gid)

        mode = stat.S_IMODE(st.st_mode)
        entries = []
        for identity, bits in (
            (owner, (mode >> 6) & 7),
            (group, (mode >> 3) & 7),
            ("Everyone", mode & 7),
        ):
            if bits:
                entries.append(AclEntry(identity=identity, rights=_POSIX_RIGHTS[bits]))
        return FolderAcl(owner=owner, entries=entries)


def default_acl_reader() -> AclReader:
    return IcaclsAclReader() if sys.platform == "win32" else PosixAclReader()


def _list_subfolders(path: Path) -> list[Path]:
    folders = []
    with os.scandir(path) as it:
        for entry in it:
            if entry.is_symlink() or getattr(entry, "is_junction", lambda: False)():
                continue
            if entry.is_dir(follow_symlinks=False):
                folders.append(Path(entry.path))
    return sorted(folders)


class SharePermissionCollector(BaseCollector):
    """
    Options:
      roots      — list of folder / UNC paths to scan
      acl_reader — AclReader override
    """

    name = "shares"
    description = "Folder ACL inventory for file shares"

    async def collect(self, result: CollectorResult):
        reader: AclReader = self.options.get("acl_reader") or default_acl_reader()
        semaphore = asyncio.Semaphore(self.config.share_scan_workers)
        max_depth = self.config.share_scan_max_depth

        permissions: list[dict] = []
        folders: list[dict] = []
        errors: list[dict] = []

        async def visit(path: Path, depth: int) -> list[Path]:
            async with semaphore:
                try:
                    acl = await asyncio.to_thread(reader.read, path)
                except AclReadError as e:
                    errors.append({"Path": str(path), "Depth": depth, "Error": str(e)})
                    return []
                try:
                    children = (
                        await asyncio.to_thread(_list_subfolders, path)
                        if depth < max_depth else []
                    )
                except OSError as e:
                    errors.append({"Path": str(path), "Depth": depth,
                                   "Error": f"Cannot list folder: {e}"})
                    children = []

            explicit = [e for e in acl.entries if not e.inherited]
            folders.append({
                "Path": str(path),
                "Depth": depth,
                "Owner": acl.owner,
                "AceCount": len(acl.entries),
                "ExplicitAceCount": len(explicit),
                # Only meaningful where the reader reports inheritance
                "InheritanceDisabled": (
                    depth > 0 and bool(acl.entries) and not any(e.inherited for e in acl.entries)
                    if isinstance(reader, IcaclsAclReader) else None
                ),
            })
            for entry in acl.entries:
                permissions.append({
                    "Path": str(path),
                    "Depth": depth,
                    "Identity": entry.identity,
                    "Rights": entry.rights,
                    "AccessType": entry.access_type,
                    "Inherited": entry.inherited,
                    "InheritanceFlags": "".join(f"({f})" for f in entry.flags),
                })
            return children

        level = []
        for root in self.options.get("roots", []):
            root_path = Path(root)
            if not root_path.is_dir():
                errors.append({"Path": str(root_path), "Depth": 0,
                               "Error": "Root folder not found or not a directory"})
                continue
            level.append(root_path)

        depth = 0
        while level:
            logger.info(f"[shares] Scanning {len(level)} folders at depth {depth}")
            children = await asyncio.gather(*(visit(p, depth) for p in level))
            level = [child for group in children for child in group]
            depth += 1

        for e in errors:
            result.add_warning(f"{e['Path']}: {e['Error']}")

        folders.sort(key=lambda r: r["Path"])
        permissions.sort(key=lambda r: (r["Path"], r["Identity"]))
        result.add_data("folders", folders)
        result.add_data("permissions", permissions)
        result.add_data("scan_errors", errors)
