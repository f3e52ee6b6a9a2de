"""
HAProxy integration.

Extracts the certificate files an HAProxy configuration declares, either
inline (``crt <path>``) or through certificate-list files
(``crt-list <path>``), and reloads HAProxy after renewals.
"""

import os
import shlex
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from .errors import ReloadError
from .logger import get_logger


class ReferenceKind(Enum):
    """How a certificate path was declared."""
    DIRECT = "direct"
    VIA_LIST = "via-list"


@dataclass(frozen=True)
class ProxyCertReference:
    """A certificate file path declared by the HAProxy configuration."""
    path: str
    kind: ReferenceKind
    source: Optional[str] = None

    @property
    def implied_base_domain(self) -> str:
        """
        Domain implied by the declared path.

        Declared bundles are expected at ``<store>/<domain>/haproxy.pem``,
        so the parent directory name is the domain.
        """
        return os.path.basename(os.path.dirname(self.path))

    @property
    def exists(self) -> bool:
        return os.path.isfile(self.path)

    @property
    def is_directory(self) -> bool:
        """True for the directory form (``crt /etc/haproxy/certs/``), which loads every file inside."""
        return self.path.endswith(("/", os.sep)) or os.path.isdir(self.path)


def _strip_comment(line: str) -> str:
    return line.split("#", 1)[0].strip()


def _resolve(path: str, base: Optional[str]) -> str:
    if base and not os.path.isabs(path):
        return os.path.join(base, path)
    return path


def parse_config_directives(
    config_text: str,
) -> Tuple[List[str], List[Tuple[str, Optional[str]]]]:
    """
    Find certificate and certificate-list paths in configuration text.

    Every ``crt <path>`` keyword pair yields a certificate path and every
    ``crt-list <path>`` pair a list file. Relative paths are resolved
    against the most recent ``crt-base`` directive. Each list file is
    returned with the ``crt-base`` in effect where it was declared; relative
    paths inside the list resolve against that directory.

    Args:
        config_text: Main HAProxy configuration

    Returns:
        Tuple of (certificate paths, (list file path, crt-base) pairs)
        in file order
    """
    certs: List[str] = []
    lists: List[Tuple[str, Optional[str]]] = []
    crt_base: Optional[str] = None

    for raw_line in config_text.splitlines():
        tokens = _strip_comment(raw_line).split()
        if not tokens:
            continue

        if tokens[0] == "crt-base" and len(tokens) > 1:
            crt_base = tokens[1]
            continue

        for keyword, value in zip(tokens, tokens[1:]):
            if keyword == "crt":
                certs.append(_resolve(value, crt_base))
            elif keyword == "crt-list":
                lists.append((_resolve(value, crt_base), crt_base))

    return certs, lists


def parse_crt_list(list_text: str) -> List[str]:
    """
    Extract certificate paths from a crt-list file.

    Each non-blank, non-comment line starts with a certificate path,
    optionally followed by SSL options and SNI filters.
    """
    paths = []
    for raw_line in list_text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        paths.append(line.split()[0])
    return paths


def _dedupe(references: Iterable[ProxyCertReference]) -> List[ProxyCertReference]:
    seen = set()
    result = []
    for reference in references:
        if reference.path in seen:
            continue
        seen.add(reference.path)
        result.append(reference)
    return result


def extract_references(
    config_text: str,
    source: Optional[str] = None,
) -> List[ProxyCertReference]:
    """
    Enumerate every certificate path the configuration declares.

    Inline references come first, followed by the contents of each
    certificate-list file in declaration order. An unreadable list file
    is logged and skipped.

    Args:
        config_text: Main HAProxy configuration text
        source: Name of the configuration file, for diagnostics

    Returns:
        De-duplicated list of ProxyCertReference
    """
    logger = get_logger()
    cert_paths, list_paths = parse_config_directives(config_text)

    references = [
        ProxyCertReference(path=path, kind=ReferenceKind.DIRECT, source=source)
        for path in cert_paths
    ]

    for list_path, crt_base in list_paths:
        logger.info(f"reading {list_path} for certificate list")
        try:
            with open(list_path, "r") as f:
                list_text = f.read()
        except OSError as e:
            logger.warning(f"Cannot read certificate list {list_path}: {e}")
            continue

        references.extend(
            ProxyCertReference(
                path=_resolve(path, crt_base), kind=ReferenceKind.VIA_LIST, source=list_path,
            )
            for path in parse_crt_list(list_text)
        )

    return _dedupe(references)


def read_proxy_references(haproxy_cfg: Union[str, Path]) -> List[ProxyCertReference]:
    """
    Read the HAProxy configuration file and extract its certificate references.

    A missing configuration file yields no references.
    """
    logger = get_logger()
    try:
        with open(haproxy_cfg, "r") as f:
            config_text = f.read()
    except OSError as e:
        logger.warning(f"Cannot read HAProxy configuration {haproxy_cfg}: {e}")
        return []

    references = extract_references(config_text, source=str(haproxy_cfg))
    logger.debug(f"Found {len(references)} declared certificate(s) in {haproxy_cfg}")
    return references


def reload_haproxy(
    reload_cmd: str,
    changed: Iterable[str],
    timeout: Optional[int] = None,
) -> bool:
    """
    Reload HAProxy if any certificate changed.

    Args:
        reload_cmd: Reload command line (e.g. "service haproxy reload")
        changed: Domains renewed during this run
        timeout: Optional timeout in seconds

    Returns:
        True if a reload was performed, False if nothing changed

    Raises:
        ReloadError: If the reload command fails
    """
    logger = get_logger()
    changed = list(changed)

    if not changed:
        logger.info("No certificate renewed, HAProxy reload not needed")
        return False

    cmd = shlex.split(reload_cmd)
    logger.info("reloading haproxy")
    logger.debug(f"Running: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise ReloadError(f"Reload command not found: {cmd[0]}")
    except subprocess.TimeoutExpired:
        raise ReloadError(f"Reload command timed out after {timeout}s")

    if result.returncode != 0:
        raise ReloadError(
            f"failed to reload haproxy! (exit {result.returncode}) {result.stderr.strip()}"
        )

    logger.success(f"HAProxy reloaded for {len(changed)} renewed certificate(s)")
    return True
