"""Expiry evaluation shared by access tokens and per-user grants.

Both kinds of access are lazily evaluated: nothing sweeps the database, the
state is computed from ``is_active`` and ``expires_at`` against a single
``now`` that the caller reads once per operation.
"""
import enum


class AccessState(enum.Enum):
    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    REVOKED = "revoked"


def is_expired(expires_at, now):
    return expires_at is not None and now >= expires_at


def seconds_remaining(expires_at, now):
    """Whole seconds left, ``None`` for access that never expires."""
    if expires_at is None:
        return None
    return max(0, int((expires_at - now).total_seconds()))


def evaluate(is_active, expires_at, now, warn_seconds=0):
    # Expiry wins over revocation: a token past its expiry reports EXPIRED either way
    if is_expired(expires_at, now):
        return AccessState.EXPIRED
    if not is_active:
        return AccessState.REVOKED
    remaining = seconds_remaining(expires_at, now)
    if remaining is not None and remaining < warn_seconds:
        return AccessState.EXPIRING_SOON
    return AccessState.ACTIVE


def is_usable(state):
    return state in (AccessState.ACTIVE, AccessState.EXPIRING_SOON)
