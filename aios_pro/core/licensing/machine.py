"""
Machine identity.

Derives a stable, hashed identifier for the current host. The raw host
attributes never leave this module.
"""

from __future__ import annotations

import hashlib
import logging
import os
import platform
import uuid
from collections.abc import Callable
from pathlib import Path

logger = logging.getLogger(__name__)

MACHINE_ID_SALT = b"aios-pro/machine-id/v1"
FALLBACK_FILE_NAME = "machine-id"

# OS-provided machine identifiers (systemd / dbus)
_MACHINE_ID_FILES = (
    Path("/etc/machine-id"),
    Path("/var/lib/dbus/machine-id"),
)


def _read_os_machine_id() -> str | None:
    """Read the systemd/dbus machine ID, if present."""
    for path in _MACHINE_ID_FILES:
        try:
            value = path.read_text(encoding="ascii").strip()
        except (OSError, UnicodeDecodeError):
            continue
        if value:
            return value
    return None


def _read_windows_machine_guid() -> str | None:
    """Read the Windows MachineGuid from the registry."""
    if os.name != "nt":
        return None
    try:
        import winreg

        with winreg.OpenKey(
            winreg.HKEY_LOCAL_MACHINE,
            r"SOFTWARE\Microsoft\Cryptography",
            0,
            winreg.KEY_READ | winreg.KEY_WOW64_64KEY,
        ) as key:
            value, _ = winreg.QueryValueEx(key, "MachineGuid")
            return str(value) or None
    except OSError:
        return None


def _read_hardware_address() -> str | None:
    """MAC address, unless uuid had to make one up."""
    node = uuid.getnode()
    # Multicast bit set means a random node
    if (node >> 40) & 0x01:
        return None
    return f"{node:012x}"


def host_identifiers() -> list[str]:
    """
    Get the most stable host identifier available.

    OS machine IDs come first; the MAC address is used only when neither
    exists.

    Returns:
        A single identifier, or an empty list
    """
    for reader in (_read_os_machine_id, _read_windows_machine_guid, _read_hardware_address):
        value = reader()
        if value:
            return [value]
    return []


class MachineIdentity:
    """
    Stable, privacy-preserving identifier for this host.

    Usage:
        machine = MachineIdentity(state_dir)
        machine_id = machine.identity()
    """

    def __init__(
        self,
        state_dir: Path,
        identifier_source: Callable[[], list[str]] | None = None,
    ):
        """
        Initialize machine identity.

        Args:
            state_dir: Directory holding the fallback identifier file
            identifier_source: Provider of host identifiers (for testing)
        """
        self.state_dir = Path(state_dir)
        self._identifier_source = identifier_source or host_identifiers
        self._identity: str | None = None

    @property
    def fallback_path(self) -> Path:
        return self.state_dir / FALLBACK_FILE_NAME

    def identity(self) -> str:
        """Get the hashed machine identifier."""
        if self._identity is None:
            identifiers = self._identifier_source()
            if identifiers:
                raw = "|".join([platform.system(), platform.machine(), *identifiers])
            else:
                logger.debug("No stable host identifier found, using persisted fallback")
                raw = "fallback|" + self._fallback_identifier()

            self._identity = hashlib.sha256(MACHINE_ID_SALT + raw.encode("utf-8")).hexdigest()
        return self._identity

    def _fallback_identifier(self) -> str:
        """Load the persisted random identifier, creating it on first use."""
        path = self.fallback_path
        try:
            value = path.read_text(encoding="ascii").strip()
            if value:
                return value
        except FileNotFoundError:
            pass
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read machine identifier %s: %s", path, e)

        value = uuid.uuid4().hex
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(value + "\n", encoding="ascii")
        except OSError as e:
            # Stable for this process only
            logger.warning("Could not persist machine identifier to %s: %s", path, e)
        return value


def get_machine_id(state_dir: Path | None = None) -> str:
    """
    Get the machine identifier for this host.

    Args:
        state_dir: State directory (defaults to configured one)

    Returns:
        Hex digest identifying this machine
    """
    if state_dir is None:
        from aios_pro.core.licensing.config import get_state_dir

        state_dir = get_state_dir()
    return MachineIdentity(state_dir).identity()
