"""
Certificate inspection.

Reads a PEM certificate and reports its subject common name, DNS
subject-alternative names and whether it expires within a threshold.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from cryptography import x509
from cryptography.hazmat.backends import default_backend
from cryptography.x509.oid import NameOID

from .errors import InspectionError
from .helpers import is_expiring_soon, unique_names


@dataclass
class CertificateDetails:
    """Metadata of one certificate, relative to a renewal threshold."""
    common_name: str
    alt_names: List[str] = field(default_factory=list)
    expires_on: Optional[datetime] = None
    expires_within_threshold: bool = False

    @property
    def names(self) -> List[str]:
        """Common name first, followed by the alternative names."""
        return [self.common_name] + self.alt_names


def load_certificate(cert_path: Union[str, Path]) -> x509.Certificate:
    """
    Load a PEM certificate from disk.

    Raises:
        InspectionError: If the file cannot be read or parsed
    """
    try:
        with open(cert_path, "rb") as f:
            cert_data = f.read()
    except OSError as e:
        raise InspectionError(f"Cannot read certificate {cert_path}: {e}")

    try:
        return x509.load_pem_x509_certificate(cert_data, default_backend())
    except ValueError as e:
        raise InspectionError(f"Malformed certificate {cert_path}: {e}")


def get_certificate_expiry(cert_path: Union[str, Path]) -> datetime:
    """
    Extract the expiry date from a PEM certificate file.

    Returns:
        Certificate expiry datetime (timezone-aware UTC)
    """
    return load_certificate(cert_path).not_valid_after_utc


def _common_name(cert: x509.Certificate) -> Optional[str]:
    attributes = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        return None
    value = attributes[0].value
    if isinstance(value, bytes):
        value = value.decode("utf-8", "replace")
    return value.strip() or None


def _dns_alt_names(cert: x509.Certificate) -> List[str]:
    try:
        extension = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    return extension.value.get_values_for_type(x509.DNSName)


def inspect_certificate(
    cert_path: Union[str, Path],
    threshold_days: int,
    now: Optional[datetime] = None,
) -> CertificateDetails:
    """
    Inspect a certificate file.

    Args:
        cert_path: Path to the PEM certificate
        threshold_days: Renewal threshold in days
        now: Reference time (defaults to the current UTC time)

    Returns:
        CertificateDetails with the alternative names de-duplicated
        against the common name

    Raises:
        InspectionError: If the certificate is unreadable, malformed or
            names no domain at all
    """
    cert = load_certificate(cert_path)

    try:
        alt_names = _dns_alt_names(cert)
        common_name = _common_name(cert)
    except ValueError as e:
        raise InspectionError(f"Malformed certificate {cert_path}: {e}")

    if common_name is None:
        if not alt_names:
            raise InspectionError(f"Certificate {cert_path} has no subject name")
        common_name = alt_names[0]

    names = unique_names([common_name] + alt_names)
    expires_on = cert.not_valid_after_utc

    return CertificateDetails(
        common_name=names[0],
        alt_names=names[1:],
        expires_on=expires_on,
        expires_within_threshold=is_expiring_soon(expires_on, threshold_days, now),
    )
