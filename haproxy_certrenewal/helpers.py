"""
Common utility functions.

Provides helper functions for expiry calculations, domain name handling,
and other common operations.
"""

from datetime import datetime, timezone, timedelta
from typing import Iterable, List, Optional, Union


SECONDS_PER_DAY = 86400


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expiring_soon(
    expires_on: datetime,
    threshold_days: int,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check if a certificate is expiring within the threshold.

    The boundary is strict: a certificate with exactly ``threshold_days``
    of validity left is not yet due, one second less is.

    Args:
        expires_on: Certificate expiration datetime
        threshold_days: Number of days before expiration to consider "soon"
        now: Reference time (defaults to the current UTC time)

    Returns:
        True if certificate is expired or expiring within threshold
    """
    now = _as_utc(now) if now is not None else utc_now()
    remaining = _as_utc(expires_on) - now
    return remaining < timedelta(seconds=threshold_days * SECONDS_PER_DAY)


def format_days_remaining(
    expires_on: Optional[datetime],
    now: Optional[datetime] = None,
) -> Union[int, str]:
    """
    Calculate days remaining until expiration.

    Args:
        expires_on: Certificate expiration datetime
        now: Reference time (defaults to the current UTC time)

    Returns:
        Number of days remaining (negative if expired), or "unknown"
    """
    if expires_on is None:
        return "unknown"

    now = _as_utc(now) if now is not None else utc_now()
    return (_as_utc(expires_on) - now).days


def format_expiration_status(
    expires_on: Optional[datetime],
    threshold_days: int,
    now: Optional[datetime] = None,
) -> str:
    """
    Format a human-readable expiration status.

    Args:
        expires_on: Certificate expiration datetime
        threshold_days: Days threshold for "expiring" status
        now: Reference time (defaults to the current UTC time)

    Returns:
        Formatted status string
    """
    days = format_days_remaining(expires_on, now)

    if isinstance(days, str):
        return "Unknown expiration"

    if days < 0:
        return f"EXPIRED ({abs(days)} days ago)"
    elif days == 0:
        return "EXPIRES TODAY"
    elif days < threshold_days:
        return f"EXPIRING in {days} day{'s' if days != 1 else ''}"
    else:
        return f"Valid ({days} days remaining)"


def unique_names(names: Iterable[str]) -> List[str]:
    """
    De-duplicate domain names, keeping the first occurrence.

    Comparison is case-insensitive; the original spelling of the first
    occurrence is kept.
    """
    seen = set()
    result = []
    for name in names:
        if not name:
            continue
        key = name.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(name.strip())
    return result


def is_bare_domain(name: str) -> bool:
    """Return True for a second-level name such as ``example.com`` (exactly one dot)."""
    return name.count(".") == 1


def with_www_sibling(names: List[str]) -> List[str]:
    """
    Apply the www heuristic to a list of requested names.

    If the first name is a bare second-level domain, ``www.<name>`` is
    appended unless it is already requested.

    Args:
        names: Requested names, primary name first

    Returns:
        New list of names to request
    """
    if not names:
        return []

    primary = names[0]
    if is_bare_domain(primary) and not primary.startswith("*."):
        return unique_names(list(names) + [f"www.{primary}"])
    return unique_names(names)
