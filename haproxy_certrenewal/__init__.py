"""
Let's Encrypt certificate renewal for HAProxy.

This package contains:
- store: certificate store discovery and version selection
- inspector: certificate expiry and name inspection
- haproxy: declared certificate references and HAProxy reload
- reconciler: renewal planning
- certbot: Certbot invocation
- bundle: HAProxy bundle and certificate-list generation
- config_loader: Configuration loading and validation
- logger: Centralized logging setup
- helpers: Common utility functions
- notification: Notification system for renewal events
"""

from .logger import setup_logger, get_logger
from .errors import (
    CertRenewalError,
    ConfigurationError,
    StoreNotFoundError,
    InspectionError,
    BundleError,
    ReloadError,
)
from .config_loader import (
    load_config,
    Config,
    Settings,
    NotificationsConfig,
    EmailNotificationConfig,
    TeamsNotificationConfig,
)
from .store import scan_store, CertificateRecord, StoreScan
from .inspector import inspect_certificate, CertificateDetails
from .haproxy import (
    extract_references,
    read_proxy_references,
    reload_haproxy,
    ProxyCertReference,
    ReferenceKind,
)
from .reconciler import (
    build_renewal_plan,
    RenewalPlan,
    RenewalPlanEntry,
    RenewalReason,
)
from .certbot import run_certbot_renewal, RenewalResult, RenewalStatus
from .bundle import compose_bundles, BundleReport
from .helpers import is_expiring_soon, with_www_sibling
from .notification import NotificationManager, NotificationContext

__version__ = "1.0.0"

__all__ = [
    # Logger
    "setup_logger",
    "get_logger",
    # Errors
    "CertRenewalError",
    "ConfigurationError",
    "StoreNotFoundError",
    "InspectionError",
    "BundleError",
    "ReloadError",
    # Config
    "load_config",
    "Config",
    "Settings",
    "NotificationsConfig",
    "EmailNotificationConfig",
    "TeamsNotificationConfig",
    # Store
    "scan_store",
    "CertificateRecord",
    "StoreScan",
    # Inspector
    "inspect_certificate",
    "CertificateDetails",
    # HAProxy
    "extract_references",
    "read_proxy_references",
    "reload_haproxy",
    "ProxyCertReference",
    "ReferenceKind",
    # Planning
    "build_renewal_plan",
    "RenewalPlan",
    "RenewalPlanEntry",
    "RenewalReason",
    # Certbot
    "run_certbot_renewal",
    "RenewalResult",
    "RenewalStatus",
    # Bundles
    "compose_bundles",
    "BundleReport",
    # Helpers
    "is_expiring_soon",
    "with_www_sibling",
    # Notifications
    "NotificationManager",
    "NotificationContext",
]
