"""
Validity window checks for client certificates.
"""
from datetime import datetime, timezone

from .models import PeerCertificate, ValidityStatus


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def check_validity(cert: PeerCertificate, now: datetime) -> ValidityStatus:
    """
    Check a certificate's not-before/not-after window against ``now``.

    Both bounds are inclusive: a certificate is still valid at the exact
    instant of its not-before and not-after timestamps.
    """
    now = _as_utc(now)
    if now < _as_utc(cert.not_before):
        return ValidityStatus.NOT_YET_VALID
    if now > _as_utc(cert.not_after):
        return ValidityStatus.EXPIRED
    return ValidityStatus.VALID
