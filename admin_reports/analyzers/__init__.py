from .base import BaseAnalyzer, Finding, SEVERITY_ORDER
from .users_analyzer import UserLicenseAnalyzer
from .mailbox_analyzer import MailboxAnalyzer
from .teams_analyzer import TeamsAnalyzer
from .ad_analyzer import ActiveDirectoryAnalyzer
from .pki_analyzer import PkiAnalyzer
from .pool_analyzer import PoolAnalyzer
from .share_analyzer import ShareAnalyzer

__all__ = [
    "BaseAnalyzer",
    "Finding",
    "SEVERITY_ORDER",
    "UserLicenseAnalyzer",
    "MailboxAnalyzer",
    "TeamsAnalyzer",
    "ActiveDirectoryAnalyzer",
    "PkiAnalyzer",
    "PoolAnalyzer",
    "ShareAnalyzer",
]
