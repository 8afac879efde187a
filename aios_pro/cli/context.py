"""
CLI context.

Exit codes and the mapping from licensing errors to them.
"""

from __future__ import annotations

from enum import IntEnum

from aios_pro.core.licensing.errors import (
    ConfigError,
    FormatError,
    LicenseError,
    NetworkError,
)


class ExitCode(IntEnum):
    """CLI exit codes following Unix conventions."""

    SUCCESS = 0
    ERROR = 1  # Authority rejected the request, license invalid
    USAGE = 64  # Missing or malformed key
    UNAVAILABLE = 69  # License authority unreachable
    CONFIG = 78  # Configuration error


def exit_code_for(error: LicenseError) -> ExitCode:
    """Map a licensing error to an exit code."""
    if isinstance(error, FormatError):
        return ExitCode.USAGE
    if isinstance(error, NetworkError):
        return ExitCode.UNAVAILABLE
    if isinstance(error, ConfigError):
        return ExitCode.CONFIG
    return ExitCode.ERROR
