"""
Authentication module — certificate, client-secret and device-code auth.
Uses MSAL for token acquisition against the Microsoft identity platform.
"""

from __future__ import annotations

import base64
import binascii
import getpass
import logging
import os

import msal
from cryptography.hazmat.primitives.hashes import SHA1
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)

from ..config import AuthConfig, REQUIRED_PERMISSIONS

logger = logging.getLogger("admin_reports.auth")

APP_SCOPES = ["https://graph.microsoft.com/.default"]

CERT_PASSWORD_ENV = "ADMIN_REPORTS_CERT_PASSWORD"
CLIENT_SECRET_ENV = "ADMIN_REPORTS_CLIENT_SECRET"


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


def _authority(tenant_id: str) -> str:
    return f"https://login.microsoftonline.com/{tenant_id}"


def read_pfx_bytes(path: str) -> bytes:
    """
    Read a PFX bundle that is stored either as raw PKCS#12 or as base64 text.
    """
    with open(path, "rb") as f:
        raw = f.read()
    try:
        return base64.b64decode(b"".join(raw.split()), validate=True)
    except (binascii.Error, ValueError):
        return raw


def load_certificate_credential(path: str, password: str) -> dict:
    """
    Load a PFX file and return the MSAL client_credential dict
    (PEM private key + SHA-1 thumbprint).
    """
    try:
        pfx = read_pfx_bytes(path)
    except FileNotFoundError:
        raise AuthenticationError(f"Certificate file not found: {path}")

    try:
        private_key, certificate, _ = pkcs12.load_key_and_certificates(
            pfx, password.encode("utf-8") if password else None
        )
    except ValueError as e:
        raise AuthenticationError(f"Failed to load certificate {path}: {e}")
    if private_key is None or certificate is None:
        raise AuthenticationError(f"PFX {path} does not contain a key and certificate")

    thumbprint = certificate.fingerprint(SHA1()).hex()
    logger.info(f"Certificate loaded. Thumbprint: {thumbprint}")
    return {
        "thumbprint": thumbprint,
        "private_key": private_key.private_bytes(
            Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
        ).decode("utf-8"),
    }


class Authenticator:
    """
    Handles MSAL-based authentication for Microsoft Graph.
    Supports:
      - Certificate-based app-only authentication
      - Client-secret app-only authentication
      - Delegated interactive authentication (device code flow)
    """

    def __init__(self, config: AuthConfig):
        self.config = config

    async def acquire_token(self) -> str:
        """Acquire an access token based on the configured auth mode."""
        if self.config.mode == "certificate":
            return self._acquire_certificate_token()
        elif self.config.mode == "secret":
            return self._acquire_secret_token()
        elif self.config.mode == "delegated":
            return self._acquire_delegated_token()
        raise AuthenticationError(f"Unknown auth mode: {self.config.mode}")

    def _acquire_certificate_token(self) -> str:
        cert_config = self.config.certificate
        if not cert_config:
            raise AuthenticationError("Certificate auth config not provided.")

        logger.info("Authenticating with certificate-based app credentials...")
        password = (
            cert_config.certificate_password
            or os.environ.get(CERT_PASSWORD_ENV, "")
        )
        if not password:
            password = getpass.getpass("Enter the certificate password: ")

        credential = load_certificate_credential(cert_config.certificate_path, password)
        app = msal.ConfidentialClientApplication(
            client_id=cert_config.client_id,
            authority=_authority(cert_config.tenant_id),
            client_credential=credential,
        )
        return self._accept(app.acquire_token_for_client(scopes=APP_SCOPES), "Certificate")

    def _acquire_secret_token(self) -> str:
        secret_config = self.config.secret
        if not secret_config:
            raise AuthenticationError("Client secret auth config not provided.")

        secret = secret_config.client_secret or os.environ.get(CLIENT_SECRET_ENV, "")
        if not secret:
            raise AuthenticationError(
                f"No client secret configured. Set {CLIENT_SECRET_ENV}."
            )

        logger.info("Authenticating with client secret...")
        app = msal.ConfidentialClientApplication(
            client_id=secret_config.client_id,
            authority=_authority(secret_config.tenant_id),
            client_credential=secret,
        )
        return self._accept(app.acquire_token_for_client(scopes=APP_SCOPES), "Client secret")

    def _acquire_delegated_token(self) -> str:
        deleg_config = self.config.delegated
        if not deleg_config:
            raise AuthenticationError("Delegated auth config not provided.")

        logger.info("Initiating device code authentication flow...")
        app = msal.PublicClientApplication(
            client_id=deleg_config.client_id,
            authority=_authority(deleg_config.tenant_id),
        )
        flow = app.initiate_device_flow(scopes=deleg_config.scopes)
        if "user_code" not in flow:
            raise AuthenticationError(
                f"Device code flow failed: {flow.get('error_description', 'Unknown')}"
            )

        # MSAL's own message carries the URL and the code
        print(f"\n{flow['message']}\n")
        return self._accept(app.acquire_token_by_device_flow(flow), "Delegated")

    def _accept(self, result: dict, label: str) -> str:
        if "access_token" in result:
            logger.info(f"{label} authentication successful.")
            return result["access_token"]
        error = result.get("error_description", result.get("error", "Unknown"))
        raise AuthenticationError(f"{label} auth failed: {error}")

    @staticmethod
    def list_required_permissions() -> dict[str, str]:
        return REQUIRED_PERMISSIONS
