"""
Local license cache.

Durable, sealed record of the last known license state, plus the
expiry and grace-period arithmetic the gate relies on.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from pathlib import Path

from pydantic import ValidationError

from aios_pro.core.licensing.crypto import CryptoBox
from aios_pro.core.licensing.models import LicenseRecord, ValidationResult, WriteResult
from aios_pro.core.licensing.storage import SealedFile

logger = logging.getLogger(__name__)

CACHE_FILE_NAME = "license.cache"

_DAY = timedelta(days=1)


# =============================================================================
# Expiry Arithmetic
# =============================================================================


def cache_expiry(record: LicenseRecord) -> datetime:
    """
    End of the offline window.

    Counted from the last successful validation, else from activation.
    """
    base = record.last_validated or record.activated_at
    return base + timedelta(days=record.cache_valid_days)


def grace_deadline(record: LicenseRecord) -> datetime:
    """End of the grace window that follows cache expiry."""
    return cache_expiry(record) + timedelta(days=record.grace_period_days)


def is_expired(record: LicenseRecord, now: datetime) -> bool:
    """Check if the offline window has passed."""
    return now > cache_expiry(record)


def is_in_grace_period(record: LicenseRecord, now: datetime) -> bool:
    """Check if the cache is expired but still within grace."""
    return is_expired(record, now) and now <= grace_deadline(record)


def days_remaining(record: LicenseRecord, now: datetime) -> int:
    """
    Days until cache expiry, rounded up. Negative once past it.

    Display only; gating uses is_expired/is_in_grace_period.
    """
    return math.ceil((cache_expiry(record) - now) / _DAY)


def refreshed_record(record: LicenseRecord, result: ValidationResult, now: datetime) -> LicenseRecord:
    """
    Apply a successful validation to a cached record.

    Same key and activation time; features, seats, expiry and windows are
    taken from the authority when present. lastValidated never moves back.
    """
    updates: dict[str, object] = {}
    if result.features is not None:
        updates["features"] = list(result.features)
    if result.seats is not None:
        updates["seats"] = result.seats
    if result.expires_at is not None:
        updates["expires_at"] = result.expires_at
    if result.cache_valid_days is not None:
        updates["cache_valid_days"] = result.cache_valid_days
    if result.grace_period_days is not None:
        updates["grace_period_days"] = result.grace_period_days

    previous = record.last_validated
    updates["last_validated"] = now if previous is None else max(previous, now)

    return LicenseRecord.model_validate({**record.model_dump(), **updates})


# =============================================================================
# Cache Store
# =============================================================================


class LicenseCache:
    """
    Sealed license cache for one machine.

    Usage:
        cache = LicenseCache(state_dir / "license.cache", box)
        record = cache.read()
    """

    is_expired = staticmethod(is_expired)
    is_in_grace_period = staticmethod(is_in_grace_period)
    days_remaining = staticmethod(days_remaining)

    def __init__(self, path: Path, box: CryptoBox):
        """
        Initialize cache.

        Args:
            path: Cache file location
            box: CryptoBox bound to this machine
        """
        self._file = SealedFile(path, box)

    @property
    def path(self) -> Path:
        return self._file.path

    def exists(self) -> bool:
        return self._file.exists()

    def read(self) -> LicenseRecord | None:
        """
        Read the cached record.

        Returns:
            LicenseRecord, or None when absent, tampered or foreign
        """
        document = self._file.read()
        if document is None:
            return None

        try:
            return LicenseRecord.model_validate(document)
        except ValidationError as e:
            logger.warning("Cached license has an invalid shape: %s", e.error_count())
            self._file.quarantine()
            return None

    def write(self, record: LicenseRecord) -> WriteResult:
        """
        Persist a record atomically.

        Returns:
            WriteResult; failures carry an actionable message
        """
        result = self._file.write(record)
        if result.success:
            logger.debug("License cache written to %s", self.path)
        return result

    def delete(self) -> None:
        """Remove the cache. Idempotent."""
        self._file.delete()
