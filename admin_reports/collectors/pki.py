"""
PKI / ADCS Collector
Parses CA and issued certificates plus CRLs exported from a certification
authority (certutil / CertEnroll share copies), and optionally probes the
HTTP CRL distribution points they advertise.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa
from cryptography.x509.oid import ExtensionOID

from .base import BaseCollector, CollectorResult
from ..timeutil import utcnow

logger = logging.getLogger("admin_reports.collectors.pki")

CERT_SUFFIXES = {".cer", ".crt", ".pem", ".der"}
CRL_SUFFIXES = {".crl"}

CDP_TIMEOUT_SECONDS = 10.0
CDP_CONCURRENCY = 8


def load_certificates(data: bytes) -> list[x509.Certificate]:
    """A file may hold one DER certificate or one or more PEM blocks."""
    if b"-----BEGIN CERTIFICATE-----" in data:
        return x509.load_pem_x509_certificates(data)
    return [x509.load_der_x509_certificate(data)]


def load_crl(data: bytes) -> x509.CertificateRevocationList:
    if b"-----BEGIN X509 CRL-----" in data:
        return x509.load_pem_x509_crl(data)
    return x509.load_der_x509_crl(data)


def _hash_name(obj) -> str:
    try:
        algorithm = obj.signature_hash_algorithm
    except UnsupportedAlgorithm:
        return obj.signature_algorithm_oid.dotted_string
    return algorithm.name if algorithm else "none"


def describe_key(cert: x509.Certificate) -> tuple[str, Optional[int]]:
    key = cert.public_key()
    if isinstance(key, rsa.RSAPublicKey):
        return "RSA", key.key_size
    if isinstance(key, ec.EllipticCurvePublicKey):
        return f"EC {key.curve.name}", key.curve.key_size
    if isinstance(key, dsa.DSAPublicKey):
        return "DSA", key.key_size
    if isinstance(key, ed25519.Ed25519PublicKey):
        return "Ed25519", 256
    if isinstance(key, ed448.Ed448PublicKey):
        return "Ed448", 456
    return type(key).__name__, None


def _extension(cert: x509.Certificate, oid):
    try:
        return cert.extensions.get_extension_for_oid(oid).value
    except x509.ExtensionNotFound:
        return None


def cdp_urls(cert: x509.Certificate) -> list[str]:
    ext = _extension(cert, ExtensionOID.CRL_DISTRIBUTION_POINTS)
    if ext is None:
        return []
    urls = []
    for point in ext:
        for name in point.full_name or []:
            if isinstance(name, x509.UniformResourceIdentifier):
                urls.append(name.value)
    return urls


def aia_urls(cert: x509.Certificate) -> list[str]:
    ext = _extension(cert, ExtensionOID.AUTHORITY_INFORMATION_ACCESS)
    if ext is None:
        return []
    return [
        desc.access_location.value
        for desc in ext
        if isinstance(desc.access_location, x509.UniformResourceIdentifier)
    ]


def is_ca(cert: x509.Certificate) -> bool:
    ext = _extension(cert, ExtensionOID.BASIC_CONSTRAINTS)
    return bool(ext and ext.ca)


class PkiCollector(BaseCollector):
    """
    Options:
      input     — folder (searched recursively) or single certificate/CRL file
      check_cdp — probe HTTP CDP URLs
      transport — httpx transport override for the CDP probe
    """

    name = "pki"
    description = "CA certificates, CRLs and CRL distribution points"

    async def collect(self, result: CollectorResult):
        source = Path(self.options["input"])
        files = [source] if source.is_file() else sorted(
            p for p in source.rglob("*") if p.is_file()
        )

        certs: list[tuple[Path, x509.Certificate]] = []
        crls: list[tuple[Path, x509.CertificateRevocationList]] = []
        for path in files:
            suffix = path.suffix.lower()
            if suffix not in CERT_SUFFIXES | CRL_SUFFIXES:
                continue
            try:
                data = path.read_bytes()
                if suffix in CRL_SUFFIXES:
                    crls.append((path, load_crl(data)))
                else:
                    certs.extend((path, c) for c in load_certificates(data))
            except (ValueError, OSError) as e:
                result.add_warning(f"Could not parse {path.name}: {e}")

        now = utcnow()
        crl_issuers = {crl.issuer.rfc4514_string() for _, crl in crls}
        result.add_data("certificates", [
            self._cert_row(path, cert, crl_issuers, now) for path, cert in certs
        ])
        result.add_data("crls", [self._crl_row(path, crl, now) for path, crl in crls])

        if self.options.get("check_cdp"):
            urls = sorted({
                url for _, cert in certs for url in cdp_urls(cert)
            })
            result.add_data("cdp_checks", await self._probe_cdps(urls, result))
        else:
            result.add_skipped("cdp_checks", "CDP probing not requested")

    def _cert_row(self, path: Path, cert: x509.Certificate, crl_issuers: set, now) -> dict:
        algorithm, size = describe_key(cert)
        not_after = cert.not_valid_after_utc
        subject = cert.subject.rfc4514_string()
        ca = is_ca(cert)
        return {
            "File": path.name,
            "Subject": subject,
            "Issuer": cert.issuer.rfc4514_string(),
            "SerialNumber": format(cert.serial_number, "x"),
            "NotBefore": cert.not_valid_before_utc.isoformat(),
            "NotAfter": not_after.isoformat(),
            "DaysRemaining": (not_after - now).days,
            "KeyAlgorithm": algorithm,
            "KeySize": size,
            "SignatureHash": _hash_name(cert),
            "IsCA": ca,
            "SelfSigned": cert.subject == cert.issuer,
            "HasCRL": (subject in crl_issuers) if ca else None,
            "CDP": "; ".join(cdp_urls(cert)),
            "AIA": "; ".join(aia_urls(cert)),
            "Thumbprint": cert.fingerprint(hashes.SHA1()).hex().upper(),
        }

    def _crl_row(self, path: Path, crl: x509.CertificateRevocationList, now) -> dict:
        next_update = crl.next_update_utc
        return {
            "File": path.name,
            "Issuer": crl.issuer.rfc4514_string(),
            "ThisUpdate": crl.last_update_utc.isoformat(),
            "NextUpdate": next_update.isoformat() if next_update else "",
            "HoursRemaining": (
                round((next_update - now).total_seconds() / 3600, 1)
                if next_update else None
            ),
            "RevokedCount": sum(1 for _ in crl),
            "SignatureHash": _hash_name(crl),
        }

    async def _probe_cdps(self, urls: list[str], result: CollectorResult) -> list[dict]:
        semaphore = asyncio.Semaphore(CDP_CONCURRENCY)

        async def probe(client: httpx.AsyncClient, url: str) -> dict:
            row = {"URL": url, "Status": None, "Reachable": False,
                   "CrlNextUpdate": "", "Error": ""}
            if not url.lower().startswith(("http://", "https://")):
                row["Error"] = "Not an HTTP URL; not probed"
                row["Reachable"] = None
                return row
            async with semaphore:
                try:
                    response = await client.get(url)
                except httpx.HTTPError as e:
                    row["Error"] = f"{type(e).__name__}: {e}"
                    return row
            row["Status"] = response.status_code
            row["Reachable"] = response.status_code == 200
            if response.status_code == 200:
                try:
                    crl = load_crl(response.content)
                    if crl.next_update_utc:
                        row["CrlNextUpdate"] = crl.next_update_utc.isoformat()
                except ValueError:
                    row["Error"] = "Response is not a CRL"
                    row["Reachable"] = False
            return row

        async with httpx.AsyncClient(
            timeout=CDP_TIMEOUT_SECONDS,
            follow_redirects=True,
            transport=self.options.get("transport"),
        ) as client:
            rows = await asyncio.gather(*(probe(client, u) for u in urls))
        result.metadata["endpoints_queried"] += len(urls)
        return list(rows)
