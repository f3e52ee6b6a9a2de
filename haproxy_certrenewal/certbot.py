"""
Certbot renewal wrapper.

Runs the ACME client once per renewal plan entry using webroot
validation, and reports the outcome without raising.
"""

import shlex
import shutil
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .config_loader import Settings
from .helpers import with_www_sibling
from .logger import get_logger
from .reconciler import RenewalPlanEntry


class RenewalStatus(Enum):
    """Status of a certificate renewal attempt."""
    RENEWED = "renewed"
    FAILED = "failed"
    DRY_RUN = "dry-run"


@dataclass
class RenewalResult:
    """Result of a certificate renewal attempt."""
    domain: str
    status: RenewalStatus
    message: str
    requested_names: List[str] = field(default_factory=list)
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == RenewalStatus.RENEWED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "domain": self.domain,
            "status": self.status.value.upper(),
            "message": self.message,
            "requested_names": self.requested_names,
            "reason": self.reason,
        }


def build_certbot_command(
    names: List[str],
    settings: Settings,
    certbot_path: Optional[str] = None,
) -> List[str]:
    """
    Build the certbot command line for a set of names.

    Args:
        names: Names to request, primary name first
        settings: Global settings
        certbot_path: Resolved client executable, replacing the first word
            of settings.ca_client

    Returns:
        Command as an argument list
    """
    cmd = shlex.split(settings.ca_client)
    if certbot_path:
        cmd[0] = certbot_path
    cmd += [
        "certonly",
        "--non-interactive",
        "--webroot",
        "--webroot-path", settings.webroot,
        "--renew-by-default",
        "--agree-tos",
    ]

    if settings.email and settings.email.strip():
        cmd.extend(["--email", settings.email.strip()])
    else:
        cmd.append("--register-unsafely-without-email")

    if settings.use_staging:
        cmd.append("--staging")

    for name in names:
        cmd.extend(["-d", name])

    return cmd


def run_certbot_renewal(
    entry: RenewalPlanEntry,
    settings: Settings,
) -> RenewalResult:
    """
    Run certbot for one renewal plan entry.

    The www heuristic is applied here: a bare second-level primary name
    also requests its ``www.`` sibling.

    Args:
        entry: Renewal plan entry
        settings: Global settings

    Returns:
        RenewalResult; failures are reported, never raised
    """
    logger = get_logger()
    names = with_www_sibling(entry.requested_names)
    reason = entry.reason.value

    if len(names) > len(entry.requested_names):
        logger.info(f"Also issuing for {names[-1]}")

    if not (settings.email and settings.email.strip()):
        logger.warning("No email configured - registering without email (not recommended)")

    # LE_CLIENT may carry extra arguments, e.g. "certbot --config-dir /x".
    client = shlex.split(settings.ca_client)[0]
    certbot_path = shutil.which(client)
    if not certbot_path:
        message = f"{client} not found"
        logger.failure(f"{entry.domain}: {message}")
        return RenewalResult(entry.domain, RenewalStatus.FAILED, message, names, reason)

    cmd = build_certbot_command(names, settings, certbot_path)
    logger.debug(f"Running: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=settings.ca_client_timeout,
        )
    except subprocess.TimeoutExpired:
        message = f"{settings.ca_client} timed out after {settings.ca_client_timeout}s"
        logger.failure(f"{entry.domain}: {message}")
        return RenewalResult(entry.domain, RenewalStatus.FAILED, message, names, reason)
    except OSError as e:
        message = f"failed to run {settings.ca_client}: {e}"
        logger.failure(f"{entry.domain}: {message}")
        return RenewalResult(entry.domain, RenewalStatus.FAILED, message, names, reason)

    if result.returncode != 0:
        logger.error(f"Certbot stderr: {result.stderr}")
        message = (
            f"failed to renew certificate (exit {result.returncode})! "
            "check /var/log/letsencrypt/letsencrypt.log!"
        )
        logger.failure(f"{entry.domain}: {message}")
        return RenewalResult(entry.domain, RenewalStatus.FAILED, message, names, reason)

    logger.debug(f"Certbot stdout: {result.stdout}")
    logger.success(f"renewed certificate for {entry.domain}")
    return RenewalResult(entry.domain, RenewalStatus.RENEWED, "Renewed", names, reason)
