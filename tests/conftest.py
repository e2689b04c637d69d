"""Shared fixtures: Graph client over httpx.MockTransport, generated PKI material."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from admin_reports.config import CollectionConfig
from admin_reports.graph.client import GraphClient
from admin_reports.safety.guardian import ReadOnlyGuard


@pytest.fixture
def collection_config():
    return CollectionConfig()


@pytest.fixture
def run_with_graph():
    """Run `fn(graph)` inside a GraphClient backed by a MockTransport handler."""

    async def _run(handler, fn):
        client = GraphClient(
            access_token="test-token",
            guard=ReadOnlyGuard(),
            transport=httpx.MockTransport(handler),
            initial_backoff=0,
        )
        async with client as graph:
            return await fn(graph)

    return _run


# ---------------------------------------------------------------------------
# PKI material
# ---------------------------------------------------------------------------

@dataclass
class Issued:
    cert: x509.Certificate
    key: rsa.RSAPrivateKey


def _name(cn: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])


def make_certificate(
    cn: str,
    *,
    days_valid: int = 3650,
    issuer: Issued | None = None,
    is_ca: bool = True,
    key_size: int = 2048,
    hash_algorithm=None,
    cdp: list[str] | None = None,
    aia: list[str] | None = None,
) -> Issued:
    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    now = dt.datetime.now(dt.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(cn))
        .issuer_name(issuer.cert.subject if issuer else _name(cn))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - dt.timedelta(days=30))
        .not_valid_after(now + dt.timedelta(days=days_valid))
        .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
    )
    if cdp:
        builder = builder.add_extension(
            x509.CRLDistributionPoints([
                x509.DistributionPoint(
                    full_name=[x509.UniformResourceIdentifier(u) for u in cdp],
                    relative_name=None, reasons=None, crl_issuer=None,
                )
            ]),
            critical=False,
        )
    if aia:
        builder = builder.add_extension(
            x509.AuthorityInformationAccess([
                x509.AccessDescription(
                    x509.oid.AuthorityInformationAccessOID.CA_ISSUERS,
                    x509.UniformResourceIdentifier(u),
                )
                for u in aia
            ]),
            critical=False,
        )
    signer = issuer.key if issuer else key
    cert = builder.sign(signer, hash_algorithm or hashes.SHA256())
    return Issued(cert=cert, key=key)


def make_crl(issuer: Issued, *, next_update_hours: float = 24 * 7, revoked: int = 0):
    now = dt.datetime.now(dt.timezone.utc)
    builder = (
        x509.CertificateRevocationListBuilder()
        .issuer_name(issuer.cert.subject)
        .last_update(now - dt.timedelta(hours=1))
        .next_update(now + dt.timedelta(hours=next_update_hours))
    )
    for serial in range(1, revoked + 1):
        builder = builder.add_revoked_certificate(
            x509.RevokedCertificateBuilder()
            .serial_number(serial)
            .revocation_date(now - dt.timedelta(days=1))
            .build()
        )
    return builder.sign(issuer.key, hashes.SHA256())


@pytest.fixture(scope="session")
def root_ca():
    return make_certificate("Contoso Root CA")


@pytest.fixture(scope="session")
def cert_factory():
    return make_certificate


@pytest.fixture(scope="session")
def crl_factory():
    return make_crl
