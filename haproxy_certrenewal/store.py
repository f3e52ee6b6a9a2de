"""
Certificate store discovery.

Scans the Let's Encrypt live directory, groups version folders
(``example.com``, ``example.com-0001``, ...) by base domain and selects
the newest folder holding a certificate for each domain.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple, Union

from .errors import StoreNotFoundError
from .logger import get_logger


CERT_FILE = "cert.pem"
PRIVKEY_FILE = "privkey.pem"
FULLCHAIN_FILE = "fullchain.pem"
BUNDLE_FILE = "haproxy.pem"

_VERSION_SUFFIX = re.compile(r"^(?P<base>.+)-(?P<version>\d+)$")


@dataclass
class CertificateRecord:
    """
    The active certificate folder of one logical domain.

    File locations are derived from the selected version folder.
    """
    base_domain: str
    version_folder: Path

    @property
    def cert_path(self) -> Path:
        return self.version_folder / CERT_FILE

    @property
    def private_key_path(self) -> Path:
        return self.version_folder / PRIVKEY_FILE

    @property
    def full_chain_path(self) -> Path:
        return self.version_folder / FULLCHAIN_FILE

    @property
    def bundle_path(self) -> Path:
        return self.version_folder / BUNDLE_FILE

    @property
    def has_certificate(self) -> bool:
        return self.cert_path.is_file()


@dataclass
class StoreScan:
    """Result of scanning the certificate store."""
    records: List[CertificateRecord] = field(default_factory=list)
    folders_scanned: int = 0
    folders_without_cert: List[str] = field(default_factory=list)

    @property
    def domains(self) -> List[str]:
        return [record.base_domain for record in self.records]


def split_version(folder_name: str) -> Tuple[str, int]:
    """
    Split a version folder name into base domain and version number.

    Folders without a numeric suffix are version 0.

    Examples:
        >>> split_version("example.com-0002")
        ('example.com', 2)
        >>> split_version("example.com")
        ('example.com', 0)
    """
    match = _VERSION_SUFFIX.match(folder_name)
    if match:
        return match.group("base"), int(match.group("version"))
    return folder_name, 0


def scan_store(root: Union[str, Path]) -> StoreScan:
    """
    Build the certificate inventory for a store root.

    Args:
        root: Certificate store root (e.g. /etc/letsencrypt/live)

    Returns:
        StoreScan with one record per base domain, sorted by base domain

    Raises:
        StoreNotFoundError: If the root directory does not exist
    """
    logger = get_logger()
    root = Path(root)

    if not root.is_dir():
        raise StoreNotFoundError(f"{root} does not exist!")

    scan = StoreScan()
    # Folders holding a certificate win over empty leftovers; the newest
    # empty folder is only used when a domain has no certificate at all.
    latest: Dict[str, Tuple[Tuple[int, str], Path]] = {}
    latest_empty: Dict[str, Tuple[Tuple[int, str], Path]] = {}

    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        if not entry.is_dir():
            continue

        scan.folders_scanned += 1
        base, version = split_version(entry.name)
        # Folder names are unique, so the (version, name) key is a total order.
        key = (version, entry.name)

        if (entry / CERT_FILE).is_file():
            candidates = latest
        else:
            scan.folders_without_cert.append(entry.name)
            candidates = latest_empty

        current = candidates.get(base)
        if current is None or key > current[0]:
            candidates[base] = (key, entry)

    for base in sorted(set(latest) | set(latest_empty)):
        folder = (latest.get(base) or latest_empty[base])[1]
        scan.records.append(CertificateRecord(base_domain=base, version_folder=folder))
        logger.debug(f"  {base}: latest folder {folder.name}")

    logger.info(
        f"Certificate store {root}: {scan.folders_scanned} folder(s), "
        f"{len(scan.records)} domain(s)"
    )
    if scan.folders_without_cert:
        logger.info(
            f"  Folders without {CERT_FILE}: {', '.join(scan.folders_without_cert)}"
        )

    return scan
