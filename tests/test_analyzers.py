from collections import Counter

from admin_reports.analyzers import (
    ActiveDirectoryAnalyzer,
    MailboxAnalyzer,
    PkiAnalyzer,
    PoolAnalyzer,
    ShareAnalyzer,
    TeamsAnalyzer,
    UserLicenseAnalyzer,
)
from admin_reports.analyzers.base import BaseAnalyzer, Finding
from admin_reports.analyzers.share_analyzer import grants_modify, short_identity
from admin_reports.config import CollectionConfig


def checks(findings):
    return Counter(f.check for f in findings)


def test_finding_ids_and_row_flattening():
    findings = MailboxAnalyzer().analyze({"mailboxes": [
        {"UserPrincipalName": "a@contoso.com", "QuotaUsedPct": 101.0, "IsInactive": True},
    ]})
    assert [f.id for f in findings] == ["MAI-001", "MAI-002"]
    row = findings[0].to_row()
    assert row["evidence"] == "quota_used_pct=101.0"
    assert Finding(id="X", report="r", check="c", title="t", evidence=["a", "b"]).to_row()["evidence"] == "a; b"


def test_analyzer_crash_becomes_informational_finding():
    class Broken(BaseAnalyzer):
        name = "broken"
        report = "pools"

        def _analyze(self, data):
            raise KeyError("Pool")

    (finding,) = Broken().analyze({})
    assert finding.id == "POO-ERR"
    assert finding.check == "analyzer_error"
    assert finding.severity == "informational"
    assert finding.deduction == 0


def test_user_analyzer():
    data = {
        "_sign_in_available": True,
        "users": [
            {"UserPrincipalName": "gone@contoso.com", "AccountEnabled": False, "LicenseCount": 1,
             "IsDormant": True},
            {"UserPrincipalName": "idle@contoso.com", "AccountEnabled": True, "LicenseCount": 2,
             "IsDormant": True, "DaysSinceSignIn": 180},
            {"UserPrincipalName": "guest#EXT#@contoso.com", "AccountEnabled": True, "UserType": "Guest",
             "DaysSinceSignIn": None, "CreatedDateTime": "2020-01-01T00:00:00+00:00"},
            {"UserPrincipalName": "newguest#EXT#@contoso.com", "AccountEnabled": True, "UserType": "Guest",
             "DaysSinceSignIn": None, "CreatedDateTime": "2999-01-01T00:00:00+00:00"},
            {"UserPrincipalName": "room@contoso.com", "AccountEnabled": True, "LicenseCount": 0,
             "UserType": "Member"},
        ],
        "licenses": [
            {"SkuPartNumber": "SPE_E3", "License": "Microsoft 365 E3", "ConsumedPct": 98.0},
            {"SkuPartNumber": "EMS", "License": "EMS E3", "ConsumedPct": 95.0},
        ],
    }
    findings = UserLicenseAnalyzer(CollectionConfig()).analyze(data)
    assert checks(findings) == {
        "disabled_licensed": 1,
        "dormant_licensed": 1,
        "guest_never_signed_in": 1,
        "unlicensed_member": 1,
        "sku_near_capacity": 1,
    }
    # Disabled accounts are not double-counted as dormant
    assert [f.subject for f in findings if f.check == "dormant_licensed"] == ["idle@contoso.com"]


def test_user_analyzer_skips_dormancy_without_sign_in_data():
    data = {
        "_sign_in_available": False,
        "users": [
            {"UserPrincipalName": "a@contoso.com", "AccountEnabled": True, "LicenseCount": 1,
             "IsDormant": True},
            {"UserPrincipalName": "g@contoso.com", "AccountEnabled": True, "UserType": "Guest"},
        ],
    }
    assert UserLicenseAnalyzer().analyze(data) == []


def test_mailbox_analyzer_thresholds():
    data = {"mailboxes": [
        {"UserPrincipalName": "full@contoso.com", "QuotaUsedPct": 100.0},
        {"UserPrincipalName": "near@contoso.com", "QuotaUsedPct": 91.5},
        {"UserPrincipalName": "fine@contoso.com", "QuotaUsedPct": 40.0},
        {"UserPrincipalName": "idle@contoso.com", "IsInactive": True, "DaysSinceActivity": None},
        {"UserPrincipalName": "big-shared@contoso.com", "RecipientType": "Shared",
         "StorageUsedGB": 62.4},
    ]}
    findings = MailboxAnalyzer(CollectionConfig(mailbox_quota_warning_pct=95)).analyze(data)
    assert checks(findings) == {"over_send_quota": 1, "inactive_mailbox": 1, "shared_over_limit": 1}

    findings = MailboxAnalyzer(CollectionConfig()).analyze(data)
    assert checks(findings)["quota_warning"] == 1
    idle = next(f for f in findings if f.check == "inactive_mailbox")
    assert idle.detail == "No recorded activity"


def test_teams_analyzer():
    data = {"teams": [
        {"DisplayName": "Orphans", "OwnerCount": 0, "MemberCount": 0,
         "HasActivityData": True, "IsArchived": False, "ActiveUsers": 0, "ChannelMessages": 0},
        {"DisplayName": "Solo", "OwnerCount": 1, "Owners": "a@contoso.com", "MemberCount": 4,
         "HasActivityData": True, "IsArchived": True, "ActiveUsers": 0, "ChannelMessages": 0},
        {"DisplayName": "Busy", "OwnerCount": 2, "MemberCount": 40,
         "HasActivityData": True, "ActiveUsers": 30, "ChannelMessages": 900},
        {"DisplayName": "Unknown", "OwnerCount": None, "MemberCount": None, "HasActivityData": False},
    ]}
    findings = TeamsAnalyzer().analyze(data)
    assert checks(findings) == {
        "ownerless_team": 1,
        "empty_team": 1,
        "inactive_team": 1,
        "single_owner_team": 1,
    }
    assert {f.subject for f in findings if f.check == "inactive_team"} == {"Orphans"}


def test_ad_analyzer():
    data = {
        "ad_users": [
            {"SamAccountName": "jdoe", "Enabled": True, "IsStale": True, "DaysSinceLogon": 200,
             "PasswordNeverExpires": True},
            {"SamAccountName": "svc", "Enabled": False, "PasswordNeverExpires": True},
        ],
        "ad_computers": [
            {"Name": "OLD01", "Enabled": True, "IsStale": True, "UnsupportedOS": True,
             "OperatingSystem": "Windows Server 2008 R2"},
            {"Name": "OFF01", "Enabled": False, "UnsupportedOS": True},
        ],
        "privileged_members": (
            [{"Group": "Domain Admins", "SamAccountName": f"admin{i}", "Enabled": True} for i in range(11)]
            + [{"Group": "Domain Admins", "SamAccountName": "admin0", "Enabled": True},
               {"Group": "Backup Operators", "SamAccountName": "old", "Enabled": False}]
        ),
    }
    findings = ActiveDirectoryAnalyzer(CollectionConfig()).analyze(data)
    assert checks(findings) == {
        "stale_user": 1,
        "password_never_expires": 1,
        "stale_computer": 1,
        "unsupported_os": 1,
        "disabled_privileged": 1,
        "privileged_sprawl": 1,
    }
    assert next(f for f in findings if f.check == "disabled_privileged").subject == "Backup Operators\\old"
    sprawl = next(f for f in findings if f.check == "privileged_sprawl")
    assert sprawl.subject == "Domain Admins"
    assert len(sprawl.evidence) == 11


def test_pki_analyzer_certificates():
    base = {"KeyAlgorithm": "RSA", "KeySize": 2048, "SignatureHash": "sha256",
            "CDP": "http://pki/x.crl", "AIA": "http://pki/x.crt"}
    data = {"certificates": [
        {**base, "Subject": "CN=Expired CA", "IsCA": True, "DaysRemaining": -3, "HasCRL": True},
        {**base, "Subject": "CN=Soon CA", "IsCA": True, "DaysRemaining": 30, "HasCRL": False},
        {**base, "Subject": "CN=Later CA", "IsCA": True, "DaysRemaining": 200, "HasCRL": True},
        {**base, "Subject": "CN=Old Root", "IsCA": True, "SelfSigned": True, "DaysRemaining": 4000,
         "HasCRL": True, "SignatureHash": "sha1", "CDP": "", "AIA": ""},
        {**base, "Subject": "CN=web", "IsCA": False, "DaysRemaining": 10, "KeySize": 1024,
         "SignatureHash": "sha1", "CDP": "", "AIA": ""},
    ]}
    findings = PkiAnalyzer(CollectionConfig()).analyze(data)
    assert checks(findings) == {
        "ca_expired": 1,
        "ca_expiring_soon": 1,
        "no_crl": 1,
        "ca_expiry_notice": 1,
        "weak_rsa_key": 1,
        "weak_signature": 1,
        "missing_cdp": 1,
        "missing_aia": 1,
    }
    assert {f.subject for f in findings if f.check in ("weak_signature", "missing_cdp")} == {"CN=web"}


def test_pki_analyzer_crls_and_cdp():
    data = {
        "crls": [
            {"Issuer": "CN=A", "HoursRemaining": -1.0},
            {"Issuer": "CN=B", "HoursRemaining": 20.0},
            {"Issuer": "CN=C", "HoursRemaining": 160.0},
            {"Issuer": "CN=D", "HoursRemaining": None},
        ],
        "cdp_checks": [
            {"URL": "http://pki/a.crl", "Reachable": True, "Status": 200},
            {"URL": "http://pki/b.crl", "Reachable": False, "Status": 404, "Error": ""},
            {"URL": "ldap:///CN=x", "Reachable": None},
        ],
    }
    findings = PkiAnalyzer(CollectionConfig(crl_warning_hours=24)).analyze(data)
    assert checks(findings) == {"crl_expired": 1, "crl_expiring": 1, "cdp_unreachable": 1}
    assert next(f for f in findings if f.check == "cdp_unreachable").detail == "HTTP 404"


def test_pool_analyzer():
    data = {"pools": [
        {"Pool": "sba01.contoso.com", "Category": "Survivable Branch Appliance", "UserCount": 15,
         "MigrationAction": "Replace"},
        {"Pool": "edge01.contoso.com", "Category": "Edge"},
        {"Pool": "pool01.contoso.com", "Category": "Front End", "UserCount": 0},
        {"Pool": "x.contoso.com", "Category": "Other", "UserCount": None},
    ]}
    findings = PoolAnalyzer().analyze(data)
    assert checks(findings) == {
        "sba_replacement": 1,
        "pool_hosting_users": 1,
        "edge_federation_plan": 1,
        "uncategorized_pool": 1,
    }
    assert findings[0].recommendation == "Replace"


def test_share_helpers():
    assert short_identity("CONTOSO\\Domain Users") == "domain users"
    assert short_identity("Everyone") == "everyone"
    assert grants_modify("M")
    assert grants_modify("RX,GA")
    assert grants_modify("F")
    assert not grants_modify("RX,W")
    assert not grants_modify("RX")
    assert not grants_modify("")


def test_share_analyzer():
    data = {
        "permissions": [
            {"Path": "D:\\Shares", "Identity": "Everyone", "Rights": "M", "AccessType": "Allow"},
            {"Path": "D:\\Shares\\HR", "Identity": "Everyone", "Rights": "M", "AccessType": "Allow",
             "Inherited": True},
            {"Path": "D:\\Shares", "Identity": "CONTOSO\\Domain Users", "Rights": "RX", "AccessType": "Allow"},
            {"Path": "D:\\Shares\\HR", "Identity": "CONTOSO\\Interns", "Rights": "W", "AccessType": "Deny"},
            {"Path": "D:\\Shares\\HR", "Identity": "*S-1-5-21-1-2-3-1105", "Rights": "RX",
             "AccessType": "Allow"},
        ],
        "folders": [
            {"Path": "D:\\Shares\\HR", "InheritanceDisabled": True, "ExplicitAceCount": 3},
            {"Path": "D:\\Shares", "InheritanceDisabled": None},
        ],
        "scan_errors": [{"Path": "D:\\Shares\\Locked", "Error": "Access is denied."}],
    }
    findings = ShareAnalyzer().analyze(data)
    assert checks(findings) == {
        "broad_modify_access": 1,
        "explicit_deny": 1,
        "unresolved_sid": 1,
        "inheritance_disabled": 1,
        "scan_error": 1,
    }
    broad = next(f for f in findings if f.check == "broad_modify_access")
    assert broad.subject == "D:\\Shares"
    assert broad.severity == "high"


def test_share_analyzer_reports_inherited_entries_on_scan_root_only():
    data = {"permissions": [
        {"Path": "\\\\fs01\\Finance", "Depth": 0, "Identity": "Everyone", "Rights": "M",
         "AccessType": "Allow", "Inherited": True, "InheritanceFlags": "(OI)(CI)"},
        {"Path": "\\\\fs01\\Finance\\AP", "Depth": 1, "Identity": "Everyone", "Rights": "M",
         "AccessType": "Allow", "Inherited": True, "InheritanceFlags": "(OI)(CI)"},
        {"Path": "\\\\fs01\\Finance", "Depth": 0, "Identity": "NT AUTHORITY\\Authenticated Users",
         "Rights": "GA", "AccessType": "Allow", "Inherited": True},
        {"Path": "\\\\fs01\\Finance", "Depth": 0, "Identity": "Everyone", "Rights": "W",
         "AccessType": "Allow"},
    ]}
    findings = ShareAnalyzer().analyze(data)
    assert checks(findings) == {"broad_modify_access": 2}
    assert {f.subject for f in findings} == {"\\\\fs01\\Finance"}
