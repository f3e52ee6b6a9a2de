"""
Renewal planning.

Combines the certificate store inventory, certificate inspection and the
HAProxy declared references into an ordered renewal plan.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, List, Optional

from .errors import InspectionError
from .haproxy import ProxyCertReference
from .helpers import format_expiration_status
from .inspector import CertificateDetails, inspect_certificate
from .logger import get_logger
from .store import CertificateRecord


class RenewalReason(Enum):
    """Why a domain is part of the renewal plan."""
    EXPIRING_SOON = "expiring-soon"
    FORCED_RENEW = "forced-renew"
    DECLARED_BUT_MISSING = "declared-but-missing"


@dataclass
class RenewalPlanEntry:
    """One CA client invocation to perform."""
    domain: str
    reason: RenewalReason
    requested_names: List[str]
    expires_on: Optional[datetime] = None


@dataclass
class InspectionFailure:
    """A certificate that could not be inspected."""
    domain: str
    message: str


@dataclass
class RenewalPlan:
    """Ordered renewal plan for one run."""
    entries: List[RenewalPlanEntry] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[InspectionFailure] = field(default_factory=list)

    @property
    def domains(self) -> List[str]:
        return [entry.domain for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)


Inspector = Callable[..., CertificateDetails]


def plan_store_renewals(
    records: Iterable[CertificateRecord],
    threshold_days: int,
    force_renew: bool,
    plan: RenewalPlan,
    now: Optional[datetime] = None,
    inspector: Inspector = inspect_certificate,
) -> None:
    """
    Add an entry for every stored certificate that must be renewed.

    The force flag takes precedence over the expiry check. Inspection
    failures are recorded on the plan and never treated as "not expiring".
    """
    logger = get_logger()

    for record in records:
        if not record.has_certificate:
            logger.debug(f"  {record.base_domain}: no certificate in {record.version_folder.name}")
            continue

        try:
            details = inspector(record.cert_path, threshold_days, now=now)
        except InspectionError as e:
            logger.failure(f"{record.base_domain}: {e}")
            plan.errors.append(InspectionFailure(domain=record.base_domain, message=str(e)))
            continue

        status = format_expiration_status(details.expires_on, threshold_days, now)
        logger.info(f"{record.cert_path} name {details.common_name} latest {record.version_folder.name}")

        if force_renew:
            reason = RenewalReason.FORCED_RENEW
        elif details.expires_within_threshold:
            reason = RenewalReason.EXPIRING_SOON
        else:
            logger.info(f"  {record.base_domain}: no renewal needed - {status}")
            plan.skipped.append(record.base_domain)
            continue

        logger.info(f"  {record.base_domain}: {reason.value} - {status}")
        plan.entries.append(RenewalPlanEntry(
            domain=record.base_domain,
            reason=reason,
            requested_names=details.names,
            expires_on=details.expires_on,
        ))


def plan_missing_declared(
    references: Iterable[ProxyCertReference],
    plan: RenewalPlan,
) -> None:
    """
    Add an entry for every declared certificate file missing on disk.

    Entries are added even when the store already holds a certificate for
    the domain: the HAProxy bundle itself is absent.
    """
    logger = get_logger()
    planned = set()

    for reference in references:
        if reference.exists:
            logger.info(f"skipping existing declared cert {reference.path}")
            continue
        if reference.is_directory:
            logger.warning(f"Skipping certificate directory {reference.path}: not a single-domain bundle")
            continue

        domain = reference.implied_base_domain
        if not domain:
            logger.warning(f"Cannot derive a domain from declared cert {reference.path}")
            continue
        if domain in planned:
            continue

        planned.add(domain)
        logger.info(
            f"issuing for {domain} (declared {reference.kind.value} in "
            f"{reference.source or 'configuration'}, missing {reference.path})"
        )
        plan.entries.append(RenewalPlanEntry(
            domain=domain,
            reason=RenewalReason.DECLARED_BUT_MISSING,
            requested_names=[domain],
        ))


def build_renewal_plan(
    records: Iterable[CertificateRecord],
    threshold_days: int,
    force_renew: bool,
    references: Iterable[ProxyCertReference],
    now: Optional[datetime] = None,
    inspector: Inspector = inspect_certificate,
) -> RenewalPlan:
    """
    Build the renewal plan for one run.

    Stored certificates are evaluated first, in store order, followed by
    declared-but-missing references in configuration order.

    Args:
        records: Certificate store records
        threshold_days: Renewal threshold in days
        force_renew: Renew every stored certificate regardless of expiry
        references: Certificate references declared by HAProxy
        now: Reference time (defaults to the current UTC time)
        inspector: Certificate inspection function

    Returns:
        RenewalPlan
    """
    plan = RenewalPlan()
    plan_store_renewals(records, threshold_days, force_renew, plan, now=now, inspector=inspector)
    plan_missing_declared(references, plan)

    if not plan.entries:
        get_logger().info("none of the certificates requires renewal")

    return plan
