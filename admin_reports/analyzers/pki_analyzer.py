"""
PKI / ADCS Health Analyzer
Analyzes: CA certificate lifetime, key strength, signature hashes, CRL
freshness and publication, CDP/AIA extensions and CDP reachability.
"""

from __future__ import annotations

import logging
from typing import Any

from .base import BaseAnalyzer

logger = logging.getLogger("admin_reports.analyzers.pki")

MIN_RSA_BITS = 2048
WEAK_HASHES = {"sha1", "md5"}


class PkiAnalyzer(BaseAnalyzer):
    name = "pki_analyzer"
    report = "pki"
    description = "Certification authority health"

    TITLES = {
        "ca_expired": "CA certificate expired",
        "ca_expiring_soon": "CA certificate expiring within warning window",
        "ca_expiry_notice": "CA certificate expiring within notice window",
        "weak_rsa_key": "RSA key shorter than 2048 bits",
        "weak_signature": "SHA-1 or MD5 signature",
        "crl_expired": "CRL expired",
        "crl_expiring": "CRL about to expire",
        "no_crl": "No CRL found for CA",
        "missing_cdp": "Certificate has no CRL distribution point",
        "missing_aia": "Certificate has no authority information access",
        "cdp_unreachable": "CRL distribution point unreachable",
    }
    SEVERITIES = {
        "ca_expired": "critical",
        "ca_expiring_soon": "high",
        "ca_expiry_notice": "low",
        "weak_rsa_key": "high",
        "weak_signature": "high",
        "crl_expired": "critical",
        "crl_expiring": "high",
        "no_crl": "medium",
        "missing_cdp": "medium",
        "missing_aia": "low",
        "cdp_unreachable": "high",
    }
    DEDUCTIONS = {
        "ca_expired": 30,
        "ca_expiring_soon": 15,
        "ca_expiry_notice": 3,
        "weak_rsa_key": 10,
        "weak_signature": 10,
        "crl_expired": 25,
        "crl_expiring": 10,
        "no_crl": 5,
        "missing_cdp": 5,
        "missing_aia": 2,
        "cdp_unreachable": 10,
    }

    def _analyze(self, data: dict[str, Any]):
        for cert in data.get("certificates", []):
            self._check_certificate(cert)
        for crl in data.get("crls", []):
            self._check_crl(crl)
        for probe in data.get("cdp_checks", []):
            if probe.get("Reachable") is False:
                self.add_finding(
                    "cdp_unreachable",
                    subject=probe.get("URL", ""),
                    detail=probe.get("Error") or f"HTTP {probe.get('Status')}",
                    recommendation="Fix the web publication of the CRL; clients will fail revocation checks",
                )

    def _check_certificate(self, cert: dict):
        subject = cert.get("Subject") or cert.get("File", "")
        days = cert.get("DaysRemaining")
        warning_days = self.setting("pki_expiry_warning_days", 90)
        notice_days = self.setting("pki_expiry_notice_days", 365)

        if cert.get("IsCA") and days is not None:
            if days < 0:
                self.add_finding(
                    "ca_expired",
                    subject=subject,
                    detail=f"Expired {-days} days ago ({cert.get('NotAfter')})",
                    recommendation="Renew the CA certificate and republish it to AD and AIA",
                )
            elif days <= warning_days:
                self.add_finding(
                    "ca_expiring_soon",
                    subject=subject,
                    detail=f"Expires in {days} days ({cert.get('NotAfter')})",
                    recommendation="Renew the CA certificate now; issued certificates cannot outlive it",
                )
            elif days <= notice_days:
                self.add_finding(
                    "ca_expiry_notice",
                    subject=subject,
                    detail=f"Expires in {days} days ({cert.get('NotAfter')})",
                    recommendation="Plan the CA renewal",
                )

        if cert.get("KeyAlgorithm") == "RSA" and (cert.get("KeySize") or 0) < MIN_RSA_BITS:
            self.add_finding(
                "weak_rsa_key",
                subject=subject,
                detail=f"RSA {cert.get('KeySize')} bits",
                recommendation="Re-key with at least 2048-bit RSA",
            )

        # A root's self-signature is never validated by relying parties
        if not cert.get("SelfSigned") and str(cert.get("SignatureHash", "")).lower() in WEAK_HASHES:
            self.add_finding(
                "weak_signature",
                subject=subject,
                detail=f"Signed with {cert.get('SignatureHash')}",
                recommendation="Migrate the CA to SHA-256 and reissue",
            )

        if cert.get("IsCA") and cert.get("HasCRL") is False:
            self.add_finding(
                "no_crl",
                subject=subject,
                detail="No CRL issued by this CA was found in the input",
                recommendation="Include the CA's CRL from CertEnroll, or check CRL publishing",
            )

        if not cert.get("SelfSigned"):
            if not cert.get("CDP"):
                self.add_finding(
                    "missing_cdp",
                    subject=subject,
                    recommendation="Add a CDP extension on the issuing CA and reissue",
                )
            if not cert.get("AIA"):
                self.add_finding(
                    "missing_aia",
                    subject=subject,
                    recommendation="Add an AIA extension on the issuing CA and reissue",
                )

    def _check_crl(self, crl: dict):
        issuer = crl.get("Issuer") or crl.get("File", "")
        hours = crl.get("HoursRemaining")
        if hours is None:
            return
        if hours < 0:
            self.add_finding(
                "crl_expired",
                subject=issuer,
                detail=f"NextUpdate {crl.get('NextUpdate')} has passed",
                recommendation="Publish a fresh CRL (certutil -crl) and check the CA service",
            )
        elif hours <= self.setting("crl_warning_hours", 48):
            self.add_finding(
                "crl_expiring",
                subject=issuer,
                detail=f"Expires in {hours} hours",
                recommendation="Confirm the CA is publishing CRLs on schedule",
            )
