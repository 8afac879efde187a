"""
Licensing module for AIOS Pro.

Provides machine-bound license caching, the authority client, feature
gates and the host-facing license service.
"""

from aios_pro.core.licensing.cache import (
    LicenseCache,
    cache_expiry,
    days_remaining,
    is_expired,
    is_in_grace_period,
)
from aios_pro.core.licensing.capability import load_pro_capability
from aios_pro.core.licensing.client import LicenseAuthorityClient
from aios_pro.core.licensing.config import Settings, get_state_dir, load_settings
from aios_pro.core.licensing.crypto import CryptoBox, mask_key, validate_key_format
from aios_pro.core.licensing.errors import (
    ActivationError,
    ActivationErrorCode,
    ConfigError,
    FormatError,
    IntegrityError,
    KeyMismatchError,
    LicenseError,
    NetworkError,
    ProFeatureError,
)
from aios_pro.core.licensing.gates import (
    FeatureGate,
    compute_state,
    parse_grants,
    requires_feature,
)
from aios_pro.core.licensing.machine import MachineIdentity, get_machine_id
from aios_pro.core.licensing.models import (
    ActivationResult,
    DeactivationMode,
    DeactivationResult,
    ExactGrant,
    FeatureDefinition,
    FeatureListing,
    FeatureStatus,
    LicenseRecord,
    LicenseState,
    PendingDeactivation,
    PrefixGrant,
    Seats,
    StatusReport,
    ValidationOutcome,
    ValidationResult,
    WriteResult,
)
from aios_pro.core.licensing.pending import PendingDeactivationTracker, PendingStatus
from aios_pro.core.licensing.service import LicenseService


__all__ = [
    # Models
    "LicenseRecord",
    "Seats",
    "LicenseState",
    "ValidationResult",
    "PendingDeactivation",
    "ExactGrant",
    "PrefixGrant",
    "FeatureDefinition",
    "FeatureStatus",
    "FeatureListing",
    "WriteResult",
    "ActivationResult",
    "ValidationOutcome",
    "DeactivationMode",
    "DeactivationResult",
    "StatusReport",
    # Errors
    "LicenseError",
    "FormatError",
    "ConfigError",
    "ActivationError",
    "ActivationErrorCode",
    "IntegrityError",
    "KeyMismatchError",
    "NetworkError",
    "ProFeatureError",
    # Machine & crypto
    "MachineIdentity",
    "get_machine_id",
    "CryptoBox",
    "mask_key",
    "validate_key_format",
    # Cache
    "LicenseCache",
    "cache_expiry",
    "days_remaining",
    "is_expired",
    "is_in_grace_period",
    "PendingDeactivationTracker",
    "PendingStatus",
    # Authority
    "LicenseAuthorityClient",
    # Gates
    "FeatureGate",
    "compute_state",
    "parse_grants",
    "requires_feature",
    "load_pro_capability",
    # Service & config
    "LicenseService",
    "Settings",
    "get_state_dir",
    "load_settings",
]
