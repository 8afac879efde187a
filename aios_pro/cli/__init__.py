"""
CLI for AIOS Pro.

Command-line interface for license activation, status and feature listing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from aios_pro.cli.context import ExitCode, exit_code_for

if TYPE_CHECKING:
    from typer import Typer

    app: Typer


def __getattr__(name: str) -> Any:
    if name == "app":
        from aios_pro.cli.main import app as _app

        return _app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "ExitCode",
    "app",
    "exit_code_for",
]
