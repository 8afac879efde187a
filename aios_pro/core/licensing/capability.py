"""
Optional pro capabilities.

Pro functionality is looked up through a narrow interface instead of
being imported unconditionally. Missing or unlicensed capabilities are a
normal state: the host keeps running on the core path.
"""

from __future__ import annotations

import importlib
import importlib.util
import logging
from types import ModuleType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aios_pro.core.licensing.gates import FeatureGate

logger = logging.getLogger(__name__)


def is_installed(module_name: str) -> bool:
    """Check if a module can be imported, without importing it."""
    try:
        return importlib.util.find_spec(module_name) is not None
    except (ImportError, ValueError):
        # Parent package missing or invalid name
        return False


def load_pro_capability(gate: FeatureGate, module_name: str, feature_id: str) -> ModuleType | None:
    """
    Load a pro capability if it is both installed and licensed.

    Args:
        gate: Feature gate to check the license with
        module_name: Import name of the capability module
        feature_id: Feature that must be available

    Returns:
        Imported module, or None
    """
    if not is_installed(module_name):
        logger.debug("Pro capability %s is not installed", module_name)
        return None
    if not gate.is_available(feature_id):
        logger.debug("Pro capability %s is not licensed (%s)", module_name, feature_id)
        return None
    return importlib.import_module(module_name)
