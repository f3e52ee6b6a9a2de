"""
HAProxy bundle generation.

Writes one ``haproxy.pem`` (private key followed by the full chain) per
domain and rebuilds the certificate-list file HAProxy loads them from.
All writes go through a temporary file and an atomic rename.
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from .errors import BundleError
from .logger import get_logger
from .store import CertificateRecord


BUNDLE_MODE = 0o600
CRT_LIST_MODE = 0o644


@dataclass
class BundleReport:
    """What a bundle pass did."""
    written: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    listed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "written": self.written,
            "unchanged": self.unchanged,
            "removed": self.removed,
            "listed": self.listed,
        }


def atomic_write(path: Union[str, Path], data: bytes, mode: int) -> None:
    """
    Write data to path via a temporary file in the same directory.

    Readers never observe a partially written file.
    """
    path = Path(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".new", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def build_bundle(record: CertificateRecord) -> bytes:
    """Concatenate the private key and the full chain of a record."""
    with open(record.private_key_path, "rb") as f:
        key_data = f.read()
    with open(record.full_chain_path, "rb") as f:
        chain_data = f.read()
    return key_data + chain_data


def _read_existing(path: Path) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except FileNotFoundError:
        return b""


def write_bundle(record: CertificateRecord) -> bool:
    """
    Write the HAProxy bundle of a record if its content changed.

    Returns:
        True if the bundle file was (re)written
    """
    data = build_bundle(record)
    if _read_existing(record.bundle_path) == data:
        return False
    atomic_write(record.bundle_path, data, BUNDLE_MODE)
    return True


def render_crt_list(paths: Iterable[str]) -> bytes:
    """Render certificate-list content, one path per line."""
    return "".join(f"{path}\n" for path in paths).encode()


def compose_bundles(
    records: Iterable[CertificateRecord],
    crt_list_path: Union[str, Path],
    dry_run: bool = False,
) -> BundleReport:
    """
    Regenerate every domain bundle and the certificate-list file.

    Domains whose certificate disappeared lose their stale bundle and are
    left out of the list.

    Args:
        records: Records from a fresh store scan, in store order
        crt_list_path: Live certificate-list file
        dry_run: Only report what would change

    Returns:
        BundleReport

    Raises:
        BundleError: If any file cannot be read, written or removed
    """
    logger = get_logger()
    report = BundleReport()

    try:
        for record in records:
            bundle = str(record.bundle_path)

            if not record.has_certificate:
                if record.bundle_path.exists():
                    logger.info(f"{record.base_domain}: certificate gone, removing {bundle}")
                    if not dry_run:
                        record.bundle_path.unlink()
                    report.removed.append(bundle)
                continue

            if dry_run:
                report.unchanged.append(bundle)
            elif write_bundle(record):
                logger.info(f"{record.base_domain}: wrote {bundle}")
                report.written.append(bundle)
            else:
                logger.debug(f"{record.base_domain}: {bundle} unchanged")
                report.unchanged.append(bundle)
            report.listed.append(bundle)

        if dry_run:
            logger.info(f"DRY RUN - would write {len(report.listed)} path(s) to {crt_list_path}")
        else:
            atomic_write(crt_list_path, render_crt_list(report.listed), CRT_LIST_MODE)
            logger.info(f"Wrote {len(report.listed)} path(s) to {crt_list_path}")
    except OSError as e:
        raise BundleError(f"Failed to update HAProxy bundles: {e}")

    return report
