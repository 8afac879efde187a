"""
Licensing models.

Core models for license records, gate states, feature grants and the
structured results handed back to the host.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

# Fallback windows for records that predate the fields
DEFAULT_CACHE_VALID_DAYS = 30
DEFAULT_GRACE_PERIOD_DAYS = 7

# Grant entries ending with this suffix are prefix grants
WILDCARD_SUFFIX = ".*"


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


def _as_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# camelCase on the wire and at rest, snake_case in Python
_WIRE_CONFIG: dict[str, Any] = {
    "alias_generator": to_camel,
    "populate_by_name": True,
}


# =============================================================================
# Enums
# =============================================================================


class LicenseState(Enum):
    """Effective license state, recomputed from cache and clock."""

    NOT_ACTIVATED = "not_activated"
    ACTIVE = "active"
    GRACE = "grace"
    EXPIRED = "expired"

    @property
    def label(self) -> str:
        """Human readable state name."""
        return {
            LicenseState.NOT_ACTIVATED: "Not Activated",
            LicenseState.ACTIVE: "Active",
            LicenseState.GRACE: "Grace",
            LicenseState.EXPIRED: "Expired",
        }[self]

    @property
    def grants_features(self) -> bool:
        """Only Active and Grace ever make a feature available."""
        return self in (LicenseState.ACTIVE, LicenseState.GRACE)


class DeactivationMode(Enum):
    """How a deactivation was carried out."""

    ONLINE = "online"  # Authority confirmed, seat freed
    OFFLINE = "offline"  # Local only, sync pending
    NONE = "none"  # Nothing was activated


# =============================================================================
# License Record
# =============================================================================


class Seats(BaseModel):
    """Seat usage as reported by the authority."""

    used: int = Field(default=0, ge=0)
    max: int = Field(default=1, ge=0)

    model_config = {"frozen": True}


class LicenseRecord(BaseModel):
    """Last known license state, as cached on this machine."""

    key: str = Field(description="License key (PRO-XXXX-XXXX-XXXX-XXXX)")
    activated_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime | None = Field(default=None)
    features: list[str] = Field(default_factory=list, description="Granted feature IDs")
    seats: Seats = Field(default_factory=Seats)
    cache_valid_days: int = Field(default=DEFAULT_CACHE_VALID_DAYS, ge=0)
    grace_period_days: int = Field(default=DEFAULT_GRACE_PERIOD_DAYS, ge=0)
    last_validated: datetime | None = Field(default=None)

    model_config = {**_WIRE_CONFIG, "frozen": True}

    @field_validator("cache_valid_days", mode="before")
    @classmethod
    def _default_cache_valid_days(cls, value: Any) -> Any:
        return DEFAULT_CACHE_VALID_DAYS if value is None else value

    @field_validator("grace_period_days", mode="before")
    @classmethod
    def _default_grace_period_days(cls, value: Any) -> Any:
        return DEFAULT_GRACE_PERIOD_DAYS if value is None else value

    @field_validator("seats", mode="before")
    @classmethod
    def _default_seats(cls, value: Any) -> Any:
        return Seats() if value is None else value

    @field_validator("features", mode="before")
    @classmethod
    def _default_features(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("activated_at", "expires_at", "last_validated")
    @classmethod
    def _utc_timestamps(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys and ISO timestamps."""
        return self.model_dump(mode="json", by_alias=True)


class ValidationResult(BaseModel):
    """
    Authority answer to a validate request.

    ``valid=False`` is a normal result, not an error.
    """

    valid: bool
    reason: str | None = None
    features: list[str] | None = None
    seats: Seats | None = None
    expires_at: datetime | None = None
    cache_valid_days: int | None = None
    grace_period_days: int | None = None

    model_config = {**_WIRE_CONFIG, "frozen": True}

    @field_validator("expires_at")
    @classmethod
    def _utc_timestamps(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class PendingDeactivation(BaseModel):
    """A deactivation that has not reached the authority yet."""

    key: str
    requested_at: datetime = Field(default_factory=utc_now)

    model_config = {**_WIRE_CONFIG, "frozen": True}

    @field_validator("requested_at")
    @classmethod
    def _utc_timestamps(cls, value: datetime) -> datetime:
        return _as_utc(value)  # type: ignore[return-value]


# =============================================================================
# Feature Grants
# =============================================================================


class ExactGrant(BaseModel, frozen=True):
    """Grant for exactly one feature ID."""

    feature_id: str

    def matches(self, feature_id: str) -> bool:
        return feature_id == self.feature_id

    def __str__(self) -> str:
        return self.feature_id


class PrefixGrant(BaseModel, frozen=True):
    """Grant for every feature ID under a prefix (separator included)."""

    prefix: str

    def matches(self, feature_id: str) -> bool:
        return len(feature_id) > len(self.prefix) and feature_id.startswith(self.prefix)

    def __str__(self) -> str:
        return f"{self.prefix}*"


Grant = ExactGrant | PrefixGrant


class FeatureDefinition(BaseModel, frozen=True):
    """Catalog entry for a gated feature, supplied by the host."""

    id: str
    name: str = ""
    description: str = ""
    module: str | None = None

    @property
    def module_name(self) -> str:
        """Explicit module, else the first path segment of the ID."""
        return self.module or module_of(self.id)

    @property
    def display_name(self) -> str:
        return self.name or self.id


def module_of(feature_id: str) -> str:
    """Module of a feature ID: its first path segment."""
    return feature_id.split(".", 1)[0]


# =============================================================================
# Host-facing Results
# =============================================================================


class WriteResult(BaseModel, frozen=True):
    """Outcome of persisting a sealed file."""

    success: bool
    path: str | None = None
    error: str | None = None


class FeatureStatus(BaseModel, frozen=True):
    """Availability of one feature."""

    id: str
    name: str
    description: str = ""
    module: str
    available: bool


class FeatureListing(BaseModel, frozen=True):
    """Features grouped by module."""

    state: LicenseState
    modules: dict[str, list[FeatureStatus]] = Field(default_factory=dict)

    @property
    def total_count(self) -> int:
        return sum(len(features) for features in self.modules.values())

    @property
    def available_count(self) -> int:
        return sum(1 for features in self.modules.values() for f in features if f.available)


class ActivationResult(BaseModel, frozen=True):
    """Result of a successful activation."""

    record: LicenseRecord
    key_masked: str
    state: LicenseState
    cache_warning: str | None = None
    pending_synced: bool = False


class ValidationOutcome(BaseModel, frozen=True):
    """Result of an explicit revalidation."""

    activated: bool
    valid: bool
    state: LicenseState
    key_masked: str | None = None
    record: LicenseRecord | None = None
    reason: str | None = None
    cache_warning: str | None = None
    pending_synced: bool = False


class DeactivationResult(BaseModel, frozen=True):
    """Result of a deactivation."""

    mode: DeactivationMode
    key_masked: str | None = None
    error: str | None = None

    @property
    def seat_freed(self) -> bool:
        return self.mode == DeactivationMode.ONLINE


class StatusReport(BaseModel, frozen=True):
    """Read-only snapshot of license status."""

    state: LicenseState
    key_masked: str | None = None
    features: list[str] = Field(default_factory=list)
    seats: Seats | None = None
    activated_at: datetime | None = None
    expires_at: datetime | None = None
    last_validated: datetime | None = None
    cache_valid_until: datetime | None = None
    days_remaining: int | None = None
    grace_period_days: int | None = None
    pending_deactivation: PendingDeactivation | None = None

    @property
    def in_grace(self) -> bool:
        return self.state == LicenseState.GRACE

    @property
    def next_validation(self) -> str:
        return "background" if self.state == LicenseState.ACTIVE else "required"
