"""Exceptions raised by the certificate renewal workflow."""


class CertRenewalError(Exception):
    """Base exception for all renewal operations."""

    exit_code = 1


class ConfigurationError(CertRenewalError):
    """Raised when configuration is invalid or missing."""

    exit_code = 2


class StoreNotFoundError(CertRenewalError):
    """Raised when the certificate store root does not exist."""


class InspectionError(CertRenewalError):
    """Raised when a certificate cannot be read or parsed."""


class BundleError(CertRenewalError):
    """Raised when a bundle or the certificate list cannot be written."""


class ReloadError(CertRenewalError):
    """Raised when the proxy reload command fails."""
