"""
Main CLI application.

Entry point for the aios-pro command.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Annotated

import typer

import aios_pro
from aios_pro.cli.context import ExitCode, exit_code_for
from aios_pro.core.licensing import (
    ActivationError,
    ConfigError,
    DeactivationMode,
    LicenseError,
    LicenseService,
    LicenseState,
)
from aios_pro.core.licensing.errors import REACTIVATE_COMMAND

PURCHASE_URL = "https://synkra.ai/pro"

# Create main app
app = typer.Typer(
    name="aios-pro",
    help="AIOS Pro license management",
    add_completion=False,
    no_args_is_help=True,
)


def build_service() -> LicenseService:
    """Build the license service from the environment."""
    return LicenseService.from_settings()


def _service() -> LicenseService:
    try:
        return build_service()
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(ExitCode.CONFIG) from None


def _fail(action: str, error: LicenseError) -> typer.Exit:
    typer.echo(f"\n{action} failed: {error}", err=True)
    if isinstance(error, ActivationError):
        typer.echo(f"Error code: {error.code.value}", err=True)
        if error.details:
            typer.echo(f"Details: {json.dumps(error.details, default=str)}", err=True)
    return typer.Exit(exit_code_for(error))


def format_date(value: datetime | None) -> str:
    """Format a timestamp for display."""
    if value is None:
        return "N/A"
    return value.strftime("%b %d, %Y")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"aios-pro {aios_pro.__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """AIOS Pro license management."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# =============================================================================
# Activate Command
# =============================================================================


@app.command()
def activate(
    key: Annotated[
        str,
        typer.Option("--key", "-k", help="License key (PRO-XXXX-XXXX-XXXX-XXXX)"),
    ],
) -> None:
    """Activate a license key."""
    service = _service()

    try:
        result = service.activate(key)
    except LicenseError as e:
        raise _fail("Activation", e) from None

    record = result.record
    typer.echo("\nLicense activated successfully!\n")
    typer.echo(f"  Status:       {result.state.label}")
    typer.echo(f"  Key:          {result.key_masked}")
    typer.echo(f"  Features:     {', '.join(record.features)}")
    typer.echo(f"  Seats:        {record.seats.used}/{record.seats.max} used")
    typer.echo(f"  Valid until:  {format_date(record.expires_at)}")
    typer.echo(f"  Cache:        {record.cache_valid_days} days offline operation")
    if result.cache_warning:
        typer.secho(
            f"\nWarning: Could not save license cache: {result.cache_warning}",
            fg=typer.colors.YELLOW,
            err=True,
        )


# =============================================================================
# Status Command
# =============================================================================


@app.command()
def status(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print status as JSON"),
    ] = False,
) -> None:
    """Show current license status."""
    report = _service().status()

    if json_output:
        typer.echo(report.model_dump_json(indent=2))
        return

    typer.echo("\nAIOS Pro License Status\n")
    typer.echo(f"  License:       {report.state.label}")

    if report.state == LicenseState.NOT_ACTIVATED:
        typer.echo("\n  No license activated.")
        typer.echo(f"  Activate: {REACTIVATE_COMMAND}")
        typer.echo(f"  Purchase: {PURCHASE_URL}")
    else:
        typer.echo(f"  Key:           {report.key_masked}")
        typer.echo(f"  Features:      {', '.join(report.features)}")
        if report.seats is not None:
            typer.echo(f"  Seats:         {report.seats.used}/{report.seats.max} used")
        if report.days_remaining is not None and report.days_remaining > 0:
            typer.echo(
                f"  Cache:         Valid until {format_date(report.cache_valid_until)} "
                f"({report.days_remaining} days remaining)"
            )
        else:
            typer.echo(f"  Cache:         Expired {format_date(report.cache_valid_until)}")

        if report.in_grace:
            typer.secho(
                f"\n  Grace Period Active ({report.grace_period_days} days)",
                fg=typer.colors.YELLOW,
            )
            typer.echo("  Please revalidate your license: aios-pro validate")

    if report.pending_deactivation is not None:
        typer.secho("\n  Pending Offline Deactivation", fg=typer.colors.YELLOW)
        typer.echo("  A deactivation is pending sync to the server.")
        typer.echo("  This will be synced on next online activation or validation.")

    if report.state != LicenseState.NOT_ACTIVATED:
        next_validation = "Background (when online)" if report.next_validation == "background" else "Required"
        typer.echo(f"\n  Next validation: {next_validation}")


# =============================================================================
# Deactivate Command
# =============================================================================


@app.command()
def deactivate(
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Skip confirmation prompt"),
    ] = False,
) -> None:
    """Deactivate the current license."""
    service = _service()

    current = service.status()
    if current.state == LicenseState.NOT_ACTIVATED:
        typer.echo("\nNo license is currently activated.")
        return

    if not force:
        typer.echo("\nDeactivating AIOS Pro License")
        typer.echo(f"Key: {current.key_masked}")
        typer.echo("\nThis will:")
        typer.echo("  - Remove the license from this machine")
        typer.echo("  - Free up a seat for use on another machine")
        typer.echo("  - Disable all Pro features (Core features remain available)")
        typer.echo("  - Preserve all your data and configurations")
        if not typer.confirm("Are you sure you want to deactivate?"):
            typer.echo("Deactivation cancelled.")
            raise typer.Exit(ExitCode.SUCCESS)

    result = service.deactivate()

    if result.mode == DeactivationMode.ONLINE:
        typer.echo("\nLicense deactivated successfully.")
        typer.echo("Seat has been freed for use on another machine.")
    elif result.mode == DeactivationMode.OFFLINE:
        typer.secho(f"\nCould not reach server: {result.error}", fg=typer.colors.YELLOW)
        typer.echo("Performed offline deactivation.")
        typer.echo("Seat will be freed on next online connection.")
    else:
        typer.echo("\nNo license is currently activated.")
        return

    typer.echo("\nYour data and configurations have been preserved.")
    typer.echo("Core features remain available.")
    typer.echo(f"\nTo reactivate: {REACTIVATE_COMMAND}")


# =============================================================================
# Features Command
# =============================================================================


@app.command()
def features() -> None:
    """List pro features and their availability."""
    listing = _service().list_features()

    typer.echo("\nAIOS Pro Features\n")
    for module_name, statuses in listing.modules.items():
        typer.echo(f"{module_name.capitalize()}:")
        for feature in statuses:
            marker = "✓" if feature.available else "✖"
            typer.echo(f"  {marker} {feature.name}")
            if feature.name != feature.id:
                typer.echo(f"     ID: {feature.id}")
            if feature.description:
                typer.echo(f"     {feature.description}")
        typer.echo("")

    typer.echo(f"Summary: {listing.available_count}/{listing.total_count} features available")


# =============================================================================
# Validate Command
# =============================================================================


@app.command()
def validate() -> None:
    """Force online license revalidation."""
    service = _service()

    try:
        outcome = service.validate()
    except LicenseError as e:
        raise _fail("Validation", e) from None

    if outcome.pending_synced:
        typer.echo("Pending offline deactivation synced with the server.")

    if not outcome.activated:
        typer.echo("\nNo license is currently activated.")
        typer.echo(f"Activate: {REACTIVATE_COMMAND}")
        return

    typer.echo(f"Key: {outcome.key_masked}")

    record = outcome.record
    if not outcome.valid or record is None:
        typer.echo("\n✖ License validation failed.", err=True)
        typer.echo("The license may have been revoked or expired.", err=True)
        typer.echo("Please contact support or activate a new license.", err=True)
        raise typer.Exit(ExitCode.ERROR)

    typer.echo("\n✓ License validated successfully!\n")
    typer.echo(f"  Features:     {', '.join(record.features)}")
    typer.echo(f"  Seats:        {record.seats.used}/{record.seats.max} used")
    typer.echo(f"  Valid until:  {format_date(record.expires_at)}")
    typer.echo(f"  Cache:        Refreshed for {record.cache_valid_days} days")
    if outcome.cache_warning:
        typer.secho(f"\nWarning: Could not update cache: {outcome.cache_warning}", fg=typer.colors.YELLOW, err=True)


# =============================================================================
# CLI Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
