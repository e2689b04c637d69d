from .base import BaseCollector, CollectorResult
from .users import UserLicenseCollector
from .mailboxes import MailboxCollector
from .teams import TeamsCollector
from .active_directory import ActiveDirectoryCollector, PowerShellError
from .pki import PkiCollector
from .lync_pools import PoolCollector
from .file_shares import SharePermissionCollector

__all__ = [
    "BaseCollector",
    "CollectorResult",
    "UserLicenseCollector",
    "MailboxCollector",
    "TeamsCollector",
    "ActiveDirectoryCollector",
    "PowerShellError",
    "PkiCollector",
    "PoolCollector",
    "SharePermissionCollector",
]
