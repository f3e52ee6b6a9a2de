#!/usr/bin/env python3
"""
HAProxy Let's Encrypt Certificate Renewal - Main Entry Point.

Checks every certificate under the Let's Encrypt live directory, renews
those about to expire, issues certificates HAProxy declares but that do
not exist yet, rebuilds the HAProxy bundles and certificate list, and
reloads HAProxy when something was renewed.

Usage:
    # Renew what is due (intended for cron)
    haproxy-cert-renewal

    # Renew everything regardless of expiry
    haproxy-cert-renewal --force

    # Show the renewal plan without changing anything
    haproxy-cert-renewal --dry-run --verbose

Environment variables EMAIL, FORCE_RENEW, DAYS, LE_CLIENT,
HAPROXY_RELOAD_CMD, WEBROOT, LOGTOFILE and LOGFILE are honoured.
"""

import argparse
import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .bundle import BundleReport, compose_bundles
from .certbot import RenewalResult, RenewalStatus, run_certbot_renewal
from .config_loader import Config, load_config
from .errors import BundleError, CertRenewalError, ConfigurationError, ReloadError, StoreNotFoundError
from .haproxy import read_proxy_references, reload_haproxy
from .logger import get_logger, setup_logger
from .notification import NotificationContext, NotificationManager
from .reconciler import RenewalPlan, RenewalPlanEntry, build_renewal_plan
from .store import scan_store


@dataclass
class ExecutionSummary:
    """Complete execution summary for the entire run."""
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    completed_at: Optional[str] = None
    dry_run: bool = False
    force_renew: bool = False
    success: bool = True
    exit_code: int = 0

    domains_discovered: int = 0
    references_declared: int = 0
    planned: int = 0
    skipped: List[str] = field(default_factory=list)
    results: List[RenewalResult] = field(default_factory=list)
    inspection_errors: List[str] = field(default_factory=list)
    bundles: Optional[BundleReport] = None
    reloaded: bool = False

    # Errors that abort the run
    global_errors: List[str] = field(default_factory=list)

    @property
    def renewed(self) -> List[str]:
        return [r.domain for r in self.results if r.status == RenewalStatus.RENEWED]

    @property
    def failed(self) -> List[str]:
        return [r.domain for r in self.results if r.status == RenewalStatus.FAILED]

    @property
    def changed(self) -> List[str]:
        """Primary names of the successfully renewed certificates."""
        return [r.requested_names[0] if r.requested_names else r.domain
                for r in self.results if r.succeeded]

    def add_result(self, result: RenewalResult) -> None:
        """Record a renewal result; failures mark the run as failed."""
        self.results.append(result)
        if result.status == RenewalStatus.FAILED:
            self.success = False
            self.exit_code = 1

    def add_inspection_error(self, message: str) -> None:
        self.inspection_errors.append(message)
        self.success = False
        self.exit_code = 1

    def add_global_error(self, error: str, exit_code: int = 1) -> None:
        """Add an error that aborted the run."""
        self.global_errors.append(error)
        self.success = False
        self.exit_code = exit_code

    def finalize(self) -> None:
        """Mark execution as complete."""
        self.completed_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "dry_run": self.dry_run,
            "force_renew": self.force_renew,
            "success": self.success,
            "exit_code": self.exit_code,
            "summary": {
                "domains_discovered": self.domains_discovered,
                "references_declared": self.references_declared,
                "planned": self.planned,
                "renewed": len(self.renewed),
                "failed": len(self.failed),
                "skipped": len(self.skipped),
                "inspection_errors": len(self.inspection_errors),
            },
            "results": [r.to_dict() for r in self.results],
            "inspection_errors": self.inspection_errors,
            "bundles": self.bundles.to_dict() if self.bundles else None,
            "reloaded": self.reloaded,
            "global_errors": self.global_errors,
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Let's Encrypt certificate renewal for HAProxy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                          # Renew certificates expiring soon
  %(prog)s --force                  # Renew every certificate
  %(prog)s --dry-run --verbose      # Show the plan, change nothing
  %(prog)s --config renewal.yaml    # Load settings from a YAML file
        """,
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Optional YAML configuration file",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        default=None,
        help="Renew every certificate regardless of expiry (FORCE_RENEW)",
    )
    parser.add_argument(
        "--threshold",
        type=int,
        help="Override expiration threshold in days (DAYS)",
    )
    parser.add_argument(
        "--email",
        type=str,
        help="Contact email for the ACME account (EMAIL)",
    )
    parser.add_argument(
        "--webroot",
        type=str,
        help="Webroot path used for HTTP-01 validation (WEBROOT)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Plan only: no certbot calls, no file changes, no reload",
    )
    parser.add_argument(
        "--staging",
        action="store_true",
        help="Use the Let's Encrypt staging environment",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose/debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )
    parser.add_argument(
        "--json-summary",
        action="store_true",
        help="Print a machine-readable JSON summary at the end of execution",
    )

    return parser.parse_args(argv)


def apply_cli_overrides(config: Config, args: argparse.Namespace) -> None:
    """Apply command-line overrides, the highest precedence layer."""
    logger = get_logger()
    settings = config.settings

    if args.force:
        settings.force_renew = True
    if args.threshold is not None:
        if args.threshold < 0:
            raise ConfigurationError("--threshold must not be negative")
        settings.threshold_days = args.threshold
        logger.info(f"Expiration threshold overridden to {args.threshold} days")
    if args.email:
        settings.email = args.email
    if args.webroot:
        settings.webroot = args.webroot
    if args.dry_run:
        settings.dry_run = True
    if args.staging:
        settings.use_staging = True


def execute_plan(
    plan: RenewalPlan,
    config: Config,
    summary: ExecutionSummary,
    notification_manager: Optional[NotificationManager] = None,
) -> List[str]:
    """
    Run the CA client for every plan entry.

    Failures are isolated: every entry is attempted.

    Returns:
        Primary names of the successfully renewed certificates
    """
    logger = get_logger()
    settings = config.settings

    for entry in plan.entries:
        logger.subsection(f"{entry.domain} ({entry.reason.value})")

        if settings.dry_run:
            logger.info(f"DRY RUN - would request {', '.join(entry.requested_names)}")
            result = RenewalResult(
                domain=entry.domain,
                status=RenewalStatus.DRY_RUN,
                message="Dry run - would renew",
                requested_names=list(entry.requested_names),
                reason=entry.reason.value,
            )
        else:
            result = run_certbot_renewal(entry, settings)

        summary.add_result(result)

        if notification_manager is not None and result.status != RenewalStatus.DRY_RUN:
            notification_manager.notify(_renewal_context(entry, result))

    return summary.changed


def _renewal_context(entry: RenewalPlanEntry, result: RenewalResult) -> NotificationContext:
    return NotificationContext(
        domain=entry.domain,
        event="renewal",
        status="SUCCESS" if result.succeeded else "FAILED",
        names=result.requested_names,
        reason=entry.reason.value,
        expiry_date=entry.expires_on,
        failure_reason=None if result.succeeded else result.message,
    )


def run(
    config: Config,
    summary: ExecutionSummary,
    notification_manager: Optional[NotificationManager] = None,
) -> int:
    """
    Run one reconciliation pass.

    Renewals complete before bundles are regenerated, and bundles are
    complete before the reload decision.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    logger = get_logger()
    settings = config.settings

    logger.section("PHASE 1: Certificate inventory")
    scan = scan_store(settings.le_cert_root)
    summary.domains_discovered = len(scan.records)

    references = read_proxy_references(settings.haproxy_cfg)
    summary.references_declared = len(references)

    plan = build_renewal_plan(
        records=scan.records,
        threshold_days=settings.threshold_days,
        force_renew=settings.force_renew,
        references=references,
    )
    summary.planned = len(plan)
    summary.skipped = list(plan.skipped)
    for failure in plan.errors:
        summary.add_inspection_error(f"{failure.domain}: {failure.message}")

    logger.section("PHASE 2: Renewals")
    changed = execute_plan(plan, config, summary, notification_manager)

    logger.section("PHASE 3: HAProxy bundles")
    refreshed = scan_store(settings.le_cert_root)
    summary.bundles = compose_bundles(refreshed.records, settings.crt_list, dry_run=settings.dry_run)

    logger.section("PHASE 4: HAProxy reload")
    if settings.dry_run:
        if changed:
            logger.info("DRY RUN - would reload haproxy")
        else:
            logger.info("DRY RUN - no reload")
    else:
        try:
            summary.reloaded = reload_haproxy(settings.reload_cmd, changed, timeout=settings.reload_timeout)
        except ReloadError as e:
            if notification_manager is not None:
                notification_manager.notify(NotificationContext(
                    domain=", ".join(changed),
                    event="reload",
                    status="FAILED",
                    names=changed,
                    failure_reason=str(e),
                ))
            raise

    return summary.exit_code


def log_execution_summary(summary: ExecutionSummary, output_json: bool = False) -> None:
    """
    Log the final execution summary.

    Args:
        summary: Execution summary
        output_json: Also print the summary as JSON on stdout
    """
    logger = get_logger()

    logger.section("EXECUTION SUMMARY")
    logger.info(f"  Domains discovered: {summary.domains_discovered}")
    logger.info(f"  Declared references: {summary.references_declared}")
    logger.info(f"  Planned renewals: {summary.planned}")
    logger.info(f"  Renewed: {len(summary.renewed)}")
    logger.info(f"  Failed: {len(summary.failed)}")
    logger.info(f"  No renewal needed: {len(summary.skipped)}")
    if summary.bundles is not None:
        logger.info(
            f"  Bundles written: {len(summary.bundles.written)}, "
            f"unchanged: {len(summary.bundles.unchanged)}, "
            f"removed: {len(summary.bundles.removed)}"
        )
    logger.info(f"  HAProxy reloaded: {'yes' if summary.reloaded else 'no'}")

    for domain in summary.failed:
        logger.error(f"  Failed renewal: {domain}")
    for message in summary.inspection_errors:
        logger.error(f"  Inspection error: {message}")
    for message in summary.global_errors:
        logger.error(f"  Error: {message}")

    logger.info(f"Exit Code: {summary.exit_code}")

    if output_json:
        print(summary.to_json())


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Exit Codes:
        0 - All operations succeeded
        1 - A renewal or inspection failed, the certificate store is
            missing, or bundle writing or the reload failed
        2 - Configuration error

    Returns:
        Exit code
    """
    args = parse_arguments(argv)

    logger = setup_logger(verbose=args.verbose, use_colors=not args.no_color)
    summary = ExecutionSummary()

    try:
        config = load_config(args.config)
        apply_cli_overrides(config, args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return e.exit_code

    settings = config.settings
    if settings.log_to_file:
        logger = setup_logger(verbose=args.verbose, log_file=settings.log_file)

    summary.dry_run = settings.dry_run
    summary.force_renew = settings.force_renew

    if settings.dry_run:
        logger.warning("DRY RUN MODE - No changes will be made")
    if settings.use_staging:
        logger.warning("STAGING MODE - Certificates issued will NOT be trusted by browsers")

    notification_manager = NotificationManager(config.notifications)

    try:
        run(config, summary, notification_manager)
    except StoreNotFoundError as e:
        logger.error(str(e))
        summary.add_global_error(str(e), e.exit_code)
    except BundleError as e:
        logger.failure(str(e))
        summary.add_global_error(str(e), e.exit_code)
    except ReloadError as e:
        logger.failure(str(e))
        summary.add_global_error(str(e), e.exit_code)
    except CertRenewalError as e:
        logger.error(f"Fatal error: {e}")
        summary.add_global_error(str(e), e.exit_code)

    summary.finalize()
    log_execution_summary(summary, output_json=args.json_summary)

    return summary.exit_code


if __name__ == "__main__":
    sys.exit(main())
