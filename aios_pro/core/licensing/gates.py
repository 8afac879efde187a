"""
Feature gates for license-based access control.

The gate derives the license state from the cached record and the clock
on every decision; there is no stored state. Availability checks read the
local cache at most once per snapshot and never touch the network.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from functools import wraps
from typing import Any, TypeVar

from aios_pro.core.licensing.cache import LicenseCache, is_expired, is_in_grace_period
from aios_pro.core.licensing.errors import ProFeatureError
from aios_pro.core.licensing.models import (
    WILDCARD_SUFFIX,
    ExactGrant,
    FeatureDefinition,
    FeatureStatus,
    Grant,
    LicenseRecord,
    LicenseState,
    PrefixGrant,
    module_of,
    utc_now,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def parse_grant(entry: str) -> Grant:
    """
    Parse one feature-set entry.

    ``pro.squads.*`` becomes PrefixGrant("pro.squads."); anything else is
    an exact grant.
    """
    if entry.endswith(WILDCARD_SUFFIX):
        return PrefixGrant(prefix=entry[: -len(WILDCARD_SUFFIX) + 1])
    return ExactGrant(feature_id=entry)


def parse_grants(entries: Iterable[str]) -> tuple[Grant, ...]:
    """Parse a feature set, skipping empty entries."""
    return tuple(parse_grant(entry) for entry in entries if entry)


def compute_state(record: LicenseRecord | None, now: datetime) -> LicenseState:
    """
    Effective license state for a cached record at a point in time.

    Args:
        record: Cached record, or None when nothing is cached
        now: Current time

    Returns:
        Exactly one LicenseState
    """
    if record is None:
        return LicenseState.NOT_ACTIVATED
    if not is_expired(record, now):
        return LicenseState.ACTIVE
    if is_in_grace_period(record, now):
        return LicenseState.GRACE
    return LicenseState.EXPIRED


class FeatureGate:
    """
    Feature gate for checking license access.

    Usage:
        gate = FeatureGate(cache)
        if gate.is_available("pro.memory.analytics"):
            # Pro path
        else:
            # Core path

    Call reload() after anything writes or deletes the cache.
    """

    def __init__(
        self,
        cache: LicenseCache,
        clock: Clock | None = None,
        catalog: Iterable[FeatureDefinition] | None = None,
    ):
        """
        Initialize gate.

        Args:
            cache: License cache to read from
            clock: Source of the current time (defaults to UTC now)
            catalog: Known feature definitions, used for listings
        """
        self._cache = cache
        self._clock = clock or utc_now
        self.catalog: tuple[FeatureDefinition, ...] = tuple(catalog or ())
        self._loaded = False
        self._record: LicenseRecord | None = None
        self._grants: tuple[Grant, ...] = ()

    def _load(self) -> None:
        if self._loaded:
            return
        self._record = self._cache.read()
        self._grants = parse_grants(self._record.features) if self._record else ()
        self._loaded = True

    def reload(self) -> None:
        """Drop the in-memory snapshot; the next decision re-reads the cache."""
        self._loaded = False
        self._record = None
        self._grants = ()

    @property
    def record(self) -> LicenseRecord | None:
        """Cached record behind the current snapshot."""
        self._load()
        return self._record

    @property
    def grants(self) -> tuple[Grant, ...]:
        self._load()
        return self._grants

    def state(self, now: datetime | None = None) -> LicenseState:
        """Current license state."""
        return compute_state(self.record, now or self._clock())

    def is_available(self, feature_id: str) -> bool:
        """
        Check if a feature is available.

        False for every feature when NotActivated or Expired.
        """
        if not feature_id:
            return False
        if not self.state().grants_features:
            return False
        return any(grant.matches(feature_id) for grant in self.grants)

    def require(self, feature_id: str, friendly_name: str | None = None) -> None:
        """
        Require a feature, raising if not available.

        Raises:
            ProFeatureError: If feature is not available
        """
        if not self.is_available(feature_id):
            raise ProFeatureError(feature_id, friendly_name or self._friendly_name(feature_id))

    def list_available(self) -> list[str]:
        """
        Available feature IDs.

        Catalog IDs that pass the gate; without a catalog, the granted
        entries themselves (wildcards as written).
        """
        if self.catalog:
            return [d.id for d in self.catalog if self.is_available(d.id)]
        if not self.state().grants_features:
            return []
        return sorted(str(grant) for grant in self.grants)

    def list_by_module(self) -> dict[str, list[FeatureStatus]]:
        """Feature availability grouped by module, modules sorted."""
        statuses: list[FeatureStatus] = []
        if self.catalog:
            for definition in self.catalog:
                statuses.append(
                    FeatureStatus(
                        id=definition.id,
                        name=definition.display_name,
                        description=definition.description,
                        module=definition.module_name,
                        available=self.is_available(definition.id),
                    )
                )
        else:
            granted = self.state().grants_features
            for grant in self.grants:
                statuses.append(
                    FeatureStatus(
                        id=str(grant),
                        name=str(grant),
                        module=module_of(str(grant)),
                        available=granted,
                    )
                )

        by_module: dict[str, list[FeatureStatus]] = {}
        for status in statuses:
            by_module.setdefault(status.module, []).append(status)
        return {module: by_module[module] for module in sorted(by_module)}

    def _friendly_name(self, feature_id: str) -> str | None:
        for definition in self.catalog:
            if definition.id == feature_id:
                return definition.display_name
        return None


# Type variable for decorator
F = TypeVar("F", bound=Callable[..., Any])


def requires_feature(
    gate: FeatureGate,
    feature_id: str,
    friendly_name: str | None = None,
    fallback: Callable[..., Any] | None = None,
) -> Callable[[F], F]:
    """
    Decorator to gate a pro code path.

    Usage:
        @requires_feature(gate, "pro.memory.analytics", fallback=basic_stats)
        def analytics(...):
            ...

    Without a fallback, ProFeatureError propagates to the caller.
    """
    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                gate.require(feature_id, friendly_name)
            except ProFeatureError:
                if fallback is None:
                    raise
                logger.debug("%s not available, using core path", feature_id)
                return fallback(*args, **kwargs)
            return func(*args, **kwargs)
        return wrapper  # type: ignore
    return decorator
