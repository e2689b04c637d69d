"""
Admin Reports
=============
Inventory, health and migration-readiness reports for Microsoft 365 and the
on-premises estate around it: users and licences, mailboxes, Teams, Active
Directory, ADCS / PKI, Lync pools and file-share permissions.

Every report writes CSV, Excel, JSON and text output and narrates its
progress on the console.

WARNING: This tool operates in STRICT READ-ONLY mode.
         It never writes to a tenant, directory or file share.
"""

__version__ = "1.0.0"
__mode__ = "READ-ONLY"
