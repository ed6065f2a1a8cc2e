"""TLS certificate management for the server.

Provides self-signed certificate bootstrap on first start and loading of
the client CA bundle used for mutual TLS.
"""

import ipaddress
import os
import secrets
import ssl
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from server_monitor.core.config import Settings
from server_monitor.core.errors import TrustConfigError
from server_monitor.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_KEY_SIZE = 4096
CERT_COMMON_NAME = "server-monitor"
CERT_VALIDITY = timedelta(days=3650)
# Backdated start tolerates clock skew between issuer and verifier
CERT_BACKDATE = timedelta(minutes=5)
SERIAL_BITS = 128

LOOPBACK_DNS_NAMES = ("localhost",)
LOOPBACK_IPS = ("127.0.0.1", "::1")


@dataclass
class ClientTrustPool:
    """CA certificates trusted to sign client certificates."""

    path: Path
    certificates: list[x509.Certificate] = field(default_factory=list)

    @property
    def subjects(self) -> list[str]:
        return [cert.subject.rfc4514_string() for cert in self.certificates]


def _write_private(path: Path, data: bytes) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    # O_CREAT mode does not apply to pre-existing files
    os.chmod(path, 0o600)


def build_self_signed_certificate(
    key: rsa.RSAPrivateKey, now: datetime | None = None
) -> x509.Certificate:
    """
    Build a self-signed server certificate for loopback use.

    Args:
        key: Private key that signs and is certified
        now: Issue time, defaults to the current time

    Returns:
        Signed certificate
    """
    now = now or datetime.now(UTC)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, CERT_COMMON_NAME)])
    alt_names: list[x509.GeneralName] = [x509.DNSName(dns) for dns in LOOPBACK_DNS_NAMES]
    alt_names.extend(x509.IPAddress(ipaddress.ip_address(ip)) for ip in LOOPBACK_IPS)

    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(secrets.randbits(SERIAL_BITS) or 1)
        .not_valid_before(now - CERT_BACKDATE)
        .not_valid_after(now + CERT_VALIDITY)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(x509.SubjectAlternativeName(alt_names), critical=False)
        .sign(key, hashes.SHA256())
    )


def ensure_server_certificate(
    cert_path: str | Path, key_path: str | Path, key_size: int = DEFAULT_KEY_SIZE
) -> bool:
    """
    Generate a self-signed certificate unless both files already exist.

    Args:
        cert_path: Destination of the PEM certificate
        key_path: Destination of the PEM private key
        key_size: RSA modulus size in bits

    Returns:
        True if new material was generated, False if existing files were kept

    Raises:
        TrustConfigError: If key generation or writing fails
    """
    cert_path = Path(cert_path)
    key_path = Path(key_path)
    if cert_path.is_file() and key_path.is_file():
        return False

    logger.info(
        "Generating self-signed TLS certificate",
        extra={"cert_path": str(cert_path), "key_size": key_size},
    )
    try:
        for directory in {cert_path.parent, key_path.parent}:
            directory.mkdir(mode=0o700, parents=True, exist_ok=True)

        key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
        cert = build_self_signed_certificate(key)

        key_pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
        _write_private(key_path, key_pem)
        _write_private(cert_path, cert.public_bytes(serialization.Encoding.PEM))
    except (OSError, ValueError) as exc:
        raise TrustConfigError(f"Failed to generate TLS certificate: {exc}") from exc

    logger.info(
        "Self-signed TLS certificate written",
        extra={"cert_path": str(cert_path), "fingerprint": certificate_fingerprint(cert_path)},
    )
    return True


def certificate_fingerprint(cert_path: str | Path) -> str:
    """
    Get the SHA-256 fingerprint of a PEM certificate.

    Returns:
        Fingerprint as colon separated hex (e.g., "AB:CD:EF:...")

    Raises:
        TrustConfigError: If the certificate cannot be read
    """
    try:
        cert = x509.load_pem_x509_certificate(Path(cert_path).read_bytes())
    except (OSError, ValueError) as exc:
        raise TrustConfigError(f"Cannot read certificate {cert_path}: {exc}") from exc

    digest = cert.fingerprint(hashes.SHA256())
    return ":".join(f"{byte:02X}" for byte in digest)


def load_client_trust_pool(path: str | Path) -> ClientTrustPool:
    """
    Load the CA bundle used to verify client certificates.

    Args:
        path: PEM bundle containing one or more CA certificates

    Returns:
        Parsed trust pool

    Raises:
        TrustConfigError: If the file is unreadable or holds no certificate
    """
    bundle_path = Path(path)
    try:
        data = bundle_path.read_bytes()
    except OSError as exc:
        raise TrustConfigError(f"Cannot read client CA bundle {bundle_path}: {exc}") from exc

    try:
        certificates = x509.load_pem_x509_certificates(data)
    except ValueError as exc:
        raise TrustConfigError(f"No valid certificate in client CA bundle {bundle_path}") from exc

    if not certificates:
        raise TrustConfigError(f"No valid certificate in client CA bundle {bundle_path}")

    return ClientTrustPool(path=bundle_path, certificates=certificates)


def build_ssl_options(settings: Settings) -> dict[str, Any]:
    """
    Prepare TLS material and translate it into uvicorn keyword arguments.

    Generates the server certificate when missing and, when mutual TLS is
    required, validates the client CA bundle before the listener binds.

    Raises:
        TrustConfigError: If TLS material is unusable
    """
    tls = settings.tls
    ensure_server_certificate(tls.cert_path, tls.key_path)
    logger.info(
        "Serving TLS certificate",
        extra={"cert_path": tls.cert_path, "fingerprint": certificate_fingerprint(tls.cert_path)},
    )

    options: dict[str, Any] = {
        "ssl_certfile": tls.cert_path,
        "ssl_keyfile": tls.key_path,
    }

    if tls.require_client_ca:
        if not tls.client_ca_path:
            raise TrustConfigError("require_client_ca is set but no client_ca_path is configured")
        pool = load_client_trust_pool(tls.client_ca_path)
        logger.info(
            "Mutual TLS enabled",
            extra={"client_ca_path": str(pool.path), "ca_subjects": pool.subjects},
        )
        options["ssl_ca_certs"] = str(pool.path)
        options["ssl_cert_reqs"] = ssl.CERT_REQUIRED
    elif tls.client_ca_path:
        logger.warning(
            "client_ca_path is set but require_client_ca is false; "
            "client certificates are not verified"
        )

    return options
