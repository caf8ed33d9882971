"""
Self-signed certificate for running a server without provisioning one.
"""
import datetime
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

DEFAULT_VALIDITY_DAYS = 365


def generate_self_signed(
        common_name: str = "localhost",
        valid_days: int = DEFAULT_VALIDITY_DAYS,
    ) -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    private_key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=1))
        .not_valid_after(now + datetime.timedelta(days=valid_days))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(common_name)]), critical=False)
        .sign(private_key, hashes.SHA256())
    )
    return certificate, private_key


def write_pem(
        certificate: x509.Certificate,
        private_key: ec.EllipticCurvePrivateKey,
        certfile: str,
        keyfile: Optional[str] = None,
    ) -> None:
    """Write the certificate (and the key, when `keyfile` is given) as PEM so clients can pin it with --ca-certs."""
    Path(certfile).write_bytes(certificate.public_bytes(serialization.Encoding.PEM))
    if keyfile is None:
        return
    Path(keyfile).write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
