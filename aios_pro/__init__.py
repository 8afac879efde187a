"""
aios-pro: license validation and feature gating for AIOS Pro.

A library and reference CLI that decides, online or offline, whether
paid capabilities are usable on this machine.

Usage:
    from aios_pro.core.licensing import LicenseService
    service = LicenseService.from_settings()
    service.gate.is_available("pro.memory.analytics")
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
