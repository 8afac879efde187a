"""
License service.

Host-facing API composed from the licensing core: activate, status,
deactivate, list_features and validate. Returns structured results; all
formatting, prompts and exit codes belong to the host.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from aios_pro.core.licensing.cache import (
    LicenseCache,
    cache_expiry,
    days_remaining,
    refreshed_record,
)
from aios_pro.core.licensing.client import LicenseAuthorityClient
from aios_pro.core.licensing.config import Settings, load_settings
from aios_pro.core.licensing.crypto import CryptoBox, mask_key, validate_key_format
from aios_pro.core.licensing.errors import (
    ActivationError,
    ActivationErrorCode,
    FormatError,
    NetworkError,
)
from aios_pro.core.licensing.gates import Clock, FeatureGate, compute_state
from aios_pro.core.licensing.machine import MachineIdentity
from aios_pro.core.licensing.models import (
    ActivationResult,
    DeactivationMode,
    DeactivationResult,
    FeatureDefinition,
    FeatureListing,
    LicenseState,
    StatusReport,
    ValidationOutcome,
    utc_now,
)
from aios_pro.core.licensing.pending import PendingDeactivationTracker

logger = logging.getLogger(__name__)

KEY_FORMAT_HINT = "PRO-XXXX-XXXX-XXXX-XXXX"

# Authority answers that mean the seat is already released
_SETTLED_DEACTIVATION_CODES = frozenset(
    {
        ActivationErrorCode.INVALID_KEY,
        ActivationErrorCode.KEY_REVOKED,
        ActivationErrorCode.MACHINE_NOT_ACTIVATED,
    }
)


class LicenseService:
    """
    Licensing operations for a host application.

    Usage:
        service = LicenseService.from_settings()
        service.activate("PRO-AB12-CD34-EF56-GH78")
        if service.gate.is_available("pro.memory.analytics"):
            ...
    """

    def __init__(
        self,
        settings: Settings,
        *,
        machine: MachineIdentity | None = None,
        cache: LicenseCache | None = None,
        tracker: PendingDeactivationTracker | None = None,
        client: LicenseAuthorityClient | None = None,
        gate: FeatureGate | None = None,
        clock: Clock | None = None,
        catalog: Iterable[FeatureDefinition] | None = None,
    ):
        """
        Initialize service. Every collaborator is optional and built from
        settings when omitted.
        """
        self.settings = settings
        self._clock = clock or utc_now
        self.machine = machine or MachineIdentity(settings.state_dir)

        if cache is None or tracker is None:
            box = CryptoBox(self.machine.identity())
            cache = cache or LicenseCache(settings.cache_path, box)
            tracker = tracker or PendingDeactivationTracker(settings.pending_path, box)
        self.cache = cache
        self.tracker = tracker

        self.client = client or LicenseAuthorityClient(
            settings.api_url,
            timeout=settings.timeout,
            probe_timeout=settings.probe_timeout,
        )
        self.gate = gate or FeatureGate(self.cache, clock=self._clock, catalog=catalog)

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs: Any) -> LicenseService:
        """Build a service from (resolved) settings."""
        return cls(settings or load_settings(), **kwargs)

    # =========================================================================
    # Activate
    # =========================================================================

    def activate(self, key: str | None) -> ActivationResult:
        """
        Activate a license key on this machine.

        Raises:
            FormatError: Key missing or malformed (no network access)
            ActivationError: Authority rejected the key
            NetworkError: Authority unreachable
        """
        key = (key or "").strip().upper()
        if not key:
            raise FormatError(f"License key is required ({KEY_FORMAT_HINT})")
        if not validate_key_format(key):
            raise FormatError(f"Invalid license key format. Expected format: {KEY_FORMAT_HINT}")

        machine_id = self.machine.identity()
        pending_synced = self.sync_pending_deactivation()

        record = self.client.activate(key, machine_id, self.settings.host_version, now=self._clock())

        # A fresh activation supersedes an unsynced deactivation of the same key
        pending = self.tracker.get()
        if pending is not None and pending.key == record.key:
            logger.info("Dropping pending deactivation of %s after reactivation", mask_key(record.key))
            self.tracker.clear_pending()

        write_result = self.cache.write(record)
        if not write_result.success:
            logger.warning("License activated but cache not saved: %s", write_result.error)
        self.gate.reload()

        return ActivationResult(
            record=record,
            key_masked=mask_key(record.key),
            state=self.gate.state(),
            cache_warning=None if write_result.success else write_result.error,
            pending_synced=pending_synced,
        )

    # =========================================================================
    # Validate
    # =========================================================================

    def validate(self) -> ValidationOutcome:
        """
        Revalidate the cached license with the authority.

        ``valid=False`` from the authority is final: the cached license is
        removed. A network failure leaves the cache untouched.

        Raises:
            ActivationError: Authority rejected the request
            NetworkError: Authority unreachable
        """
        pending_synced = self.sync_pending_deactivation()

        record = self.cache.read()
        if record is None:
            return ValidationOutcome(
                activated=False,
                valid=False,
                state=LicenseState.NOT_ACTIVATED,
                pending_synced=pending_synced,
            )

        key_masked = mask_key(record.key)
        result = self.client.validate(record.key, self.machine.identity())

        if not result.valid:
            logger.warning("License %s is no longer valid: %s", key_masked, result.reason or "revoked or expired")
            self.cache.delete()
            self.gate.reload()
            return ValidationOutcome(
                activated=True,
                valid=False,
                state=self.gate.state(),
                key_masked=key_masked,
                reason=result.reason,
                pending_synced=pending_synced,
            )

        updated = refreshed_record(record, result, self._clock())
        write_result = self.cache.write(updated)
        if not write_result.success:
            logger.warning("License validated but cache not updated: %s", write_result.error)
        self.gate.reload()

        return ValidationOutcome(
            activated=True,
            valid=True,
            state=self.gate.state(),
            key_masked=key_masked,
            record=updated,
            cache_warning=None if write_result.success else write_result.error,
            pending_synced=pending_synced,
        )

    # =========================================================================
    # Deactivate
    # =========================================================================

    def deactivate(self) -> DeactivationResult:
        """
        Deactivate the cached license.

        Tries the authority when online; otherwise, or when that fails,
        records a pending deactivation. The local cache is always removed.
        """
        record = self.cache.read()
        if record is None:
            return DeactivationResult(mode=DeactivationMode.NONE)

        key_masked = mask_key(record.key)
        mode = DeactivationMode.OFFLINE
        error: str | None = None

        if self.client.is_online():
            try:
                self.client.deactivate(record.key, self.machine.identity())
                mode = DeactivationMode.ONLINE
            except (NetworkError, ActivationError) as e:
                logger.warning("Online deactivation of %s failed, falling back to offline: %s", key_masked, e)
                error = str(e)
        else:
            error = "No internet connection detected"

        if mode == DeactivationMode.OFFLINE:
            pending_result = self.tracker.set_pending(record.key)
            if not pending_result.success:
                logger.warning("Could not record pending deactivation: %s", pending_result.error)

        self.cache.delete()
        self.gate.reload()
        logger.info("License %s removed from this machine (%s)", key_masked, mode.value)

        return DeactivationResult(mode=mode, key_masked=key_masked, error=error)

    def sync_pending_deactivation(self) -> bool:
        """
        Report a pending offline deactivation to the authority.

        Returns:
            True if a pending deactivation was settled and cleared
        """
        entry = self.tracker.get()
        if entry is None:
            return False

        key_masked = mask_key(entry.key)
        try:
            self.client.deactivate(entry.key, self.machine.identity())
        except ActivationError as e:
            if e.code not in _SETTLED_DEACTIVATION_CODES:
                logger.warning("Pending deactivation of %s rejected: %s", key_masked, e)
                return False
            logger.info("Pending deactivation of %s already settled (%s)", key_masked, e.code.value)
        except NetworkError as e:
            logger.warning("Pending deactivation of %s not synced: %s", key_masked, e)
            return False

        self.tracker.clear_pending()
        logger.info("Pending deactivation of %s synced", key_masked)
        return True

    # =========================================================================
    # Read-side
    # =========================================================================

    def status(self) -> StatusReport:
        """Read-only license status."""
        record = self.gate.record
        now = self._clock()
        state = compute_state(record, now)
        pending = self.tracker.get()

        if record is None:
            return StatusReport(state=state, pending_deactivation=pending)

        return StatusReport(
            state=state,
            key_masked=mask_key(record.key),
            features=list(record.features),
            seats=record.seats,
            activated_at=record.activated_at,
            expires_at=record.expires_at,
            last_validated=record.last_validated,
            cache_valid_until=cache_expiry(record),
            days_remaining=days_remaining(record, now),
            grace_period_days=record.grace_period_days,
            pending_deactivation=pending,
        )

    def list_features(self) -> FeatureListing:
        """Features and their availability, grouped by module."""
        return FeatureListing(state=self.gate.state(), modules=self.gate.list_by_module())
