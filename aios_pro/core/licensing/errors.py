"""
Licensing errors.

Error taxonomy for the licensing core. Local, recoverable conditions
(corrupt cache, unreachable authority) are absorbed by the callers into a
degraded state; only bad user input surfaces immediately.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

REACTIVATE_COMMAND = "aios-pro activate --key <KEY>"


class ActivationErrorCode(Enum):
    """Stable rejection codes returned by the license authority."""

    INVALID_KEY = "INVALID_KEY"
    SEAT_LIMIT_EXCEEDED = "SEAT_LIMIT_EXCEEDED"
    KEY_REVOKED = "KEY_REVOKED"
    KEY_EXPIRED = "KEY_EXPIRED"
    MACHINE_NOT_ACTIVATED = "MACHINE_NOT_ACTIVATED"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, raw: Any) -> ActivationErrorCode:
        """Map a wire code to a known member, UNKNOWN otherwise."""
        try:
            return cls(str(raw).upper())
        except ValueError:
            return cls.UNKNOWN


class LicenseError(Exception):
    """Base class for all licensing errors."""


class FormatError(LicenseError):
    """Malformed license key. Raised before any network access."""


class ConfigError(LicenseError):
    """Invalid licensing configuration."""


class SealError(LicenseError):
    """Base class for sealed-file failures."""


class IntegrityError(SealError):
    """Sealed bytes were tampered with or are corrupt."""


class KeyMismatchError(SealError):
    """Sealed bytes are intact but belong to another machine."""


class NetworkError(LicenseError):
    """License authority unreachable, timed out or failing."""


class ActivationError(LicenseError):
    """The license authority rejected a request."""

    def __init__(
        self,
        code: ActivationErrorCode,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.details = details or {}
        super().__init__(message or f"License authority rejected the request ({code.value})")


class ProFeatureError(LicenseError):
    """
    Raised when a gated feature is not available.

    Gated call sites treat this as "skip the pro path", never as fatal.
    """

    def __init__(self, feature_id: str, friendly_name: str | None = None, hint: str | None = None):
        self.feature_id = feature_id
        self.friendly_name = friendly_name or feature_id
        self.hint = hint or (
            f"Activate or revalidate your license: {REACTIVATE_COMMAND}\n"
            "Core features remain available."
        )
        super().__init__(
            f"{self.friendly_name} ({feature_id}) requires an active AIOS Pro license.\n{self.hint}"
        )
