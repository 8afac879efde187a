"""
Pending deactivation tracking.

Remembers a deactivation that could not reach the authority so it can be
reported later. Stored in its own sealed file, independent of the license
cache: wiping the cache never drops a pending deactivation.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ValidationError

from aios_pro.core.licensing.crypto import CryptoBox, mask_key
from aios_pro.core.licensing.models import PendingDeactivation, WriteResult, utc_now
from aios_pro.core.licensing.storage import SealedFile

logger = logging.getLogger(__name__)

PENDING_FILE_NAME = "pending-deactivation.cache"


class PendingStatus(BaseModel, frozen=True):
    """Answer to has_pending()."""

    pending: bool
    key: str | None = None
    requested_at: datetime | None = None


class PendingDeactivationTracker:
    """Holds at most one pending deactivation key."""

    def __init__(self, path: Path, box: CryptoBox):
        self._file = SealedFile(path, box)

    @property
    def path(self) -> Path:
        return self._file.path

    def set_pending(self, key: str, now: datetime | None = None) -> WriteResult:
        """Record a deactivation intent, replacing any previous one."""
        entry = PendingDeactivation(key=key, requested_at=now or utc_now())
        result = self._file.write(entry)
        if result.success:
            logger.info("Offline deactivation recorded for %s", mask_key(key))
        return result

    def get(self) -> PendingDeactivation | None:
        """Get the pending entry, if any."""
        document = self._file.read()
        if document is None:
            return None
        try:
            return PendingDeactivation.model_validate(document)
        except ValidationError:
            logger.warning("Pending deactivation record has an invalid shape")
            self._file.quarantine()
            return None

    def has_pending(self) -> PendingStatus:
        entry = self.get()
        if entry is None:
            return PendingStatus(pending=False)
        return PendingStatus(pending=True, key=entry.key, requested_at=entry.requested_at)

    def clear_pending(self) -> None:
        """Forget the pending deactivation. Idempotent."""
        self._file.delete()
