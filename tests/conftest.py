"""
Pytest configuration and fixtures for aios-pro tests.

Provides fixtures for:
- A frozen, movable clock
- Sealed storage bound to a fake machine
- A fake license authority behind httpx.MockTransport
- A fully wired LicenseService
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import httpx
import pytest

from aios_pro.core.licensing import (
    CryptoBox,
    LicenseAuthorityClient,
    LicenseCache,
    LicenseRecord,
    LicenseService,
    MachineIdentity,
    PendingDeactivationTracker,
    Settings,
)
from aios_pro.core.licensing.client import (
    ACTIVATE_PATH,
    DEACTIVATE_PATH,
    HEALTH_PATH,
    VALIDATE_PATH,
)

VALID_KEY = "PRO-AB12-CD34-EF56-GH78"
OTHER_KEY = "PRO-ZZ99-YY88-XX77-WW66"
MACHINE_A = "machine-a"
MACHINE_B = "machine-b"
AUTHORITY_URL = "https://authority.test"
START = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


# =============================================================================
# Clock
# =============================================================================


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: float = 0, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(days=days, **kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    """Clock frozen at START."""
    return FrozenClock()


# =============================================================================
# Records & Storage
# =============================================================================


def make_record(**overrides: Any) -> LicenseRecord:
    """Create a test license record activated at START."""
    data: dict[str, Any] = {
        "key": VALID_KEY,
        "activated_at": START,
        "expires_at": START + timedelta(days=30),
        "features": ["pro.memory.*", "pro.squads.premium"],
        "seats": {"used": 1, "max": 5},
        "cache_valid_days": 30,
        "grace_period_days": 7,
    }
    data.update(overrides)
    return LicenseRecord.model_validate(data)


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    """Empty state directory."""
    return tmp_path / "state"


@pytest.fixture
def box() -> CryptoBox:
    """CryptoBox for machine A."""
    return CryptoBox(MACHINE_A)


@pytest.fixture
def cache(state_dir: Path, box: CryptoBox) -> LicenseCache:
    return LicenseCache(state_dir / "license.cache", box)


@pytest.fixture
def tracker(state_dir: Path, box: CryptoBox) -> PendingDeactivationTracker:
    return PendingDeactivationTracker(state_dir / "pending-deactivation.cache", box)


# =============================================================================
# Fake Authority
# =============================================================================


class FakeAuthority:
    """In-memory license authority served through httpx.MockTransport."""

    def __init__(self, clock: FrozenClock):
        self.clock = clock
        self.online = True
        self.valid = True
        self.reject_code: str | None = None
        self.deactivate_reject_code: str | None = None
        self.features = ["pro.memory.*"]
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.deactivated: list[str] = []
        self.transport = httpx.MockTransport(self.handler)

    def license_payload(self, key: str) -> dict[str, Any]:
        now = self.clock()
        return {
            "key": key,
            "activatedAt": now.isoformat(),
            "expiresAt": (now + timedelta(days=30)).isoformat(),
            "features": list(self.features),
            "seats": {"used": 1, "max": 5},
            "cacheValidDays": 30,
            "gracePeriodDays": 7,
        }

    def paths(self) -> list[str]:
        return [path for path, _ in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        if not self.online:
            raise httpx.ConnectError("Network is unreachable", request=request)

        path = request.url.path
        payload = json.loads(request.content) if request.content else {}
        self.requests.append((path, payload))

        if path == HEALTH_PATH:
            return httpx.Response(200, json={"status": "ok"})

        if path == ACTIVATE_PATH:
            if self.reject_code:
                return _error(403, self.reject_code)
            return httpx.Response(200, json=self.license_payload(payload["key"]))

        if path == VALIDATE_PATH:
            if not self.valid:
                return httpx.Response(200, json={"valid": False, "reason": "License revoked"})
            body = self.license_payload(payload["key"])
            body.pop("key")
            body.pop("activatedAt")
            return httpx.Response(200, json={"valid": True, **body})

        if path == DEACTIVATE_PATH:
            if self.deactivate_reject_code:
                return _error(409, self.deactivate_reject_code)
            self.deactivated.append(payload["key"])
            return httpx.Response(200, json={"success": True})

        return httpx.Response(404, json={"error": {"code": "NOT_FOUND", "message": "Unknown route"}})


def _error(status: int, code: str) -> httpx.Response:
    return httpx.Response(
        status,
        json={"error": {"code": code, "message": f"Rejected: {code}", "details": {"hint": "test"}}},
    )


@pytest.fixture
def authority(clock: FrozenClock) -> FakeAuthority:
    """Reachable fake authority."""
    return FakeAuthority(clock)


@pytest.fixture
def client(authority: FakeAuthority) -> LicenseAuthorityClient:
    return LicenseAuthorityClient(AUTHORITY_URL, transport=authority.transport)


# =============================================================================
# Service
# =============================================================================


@pytest.fixture
def settings(state_dir: Path) -> Settings:
    return Settings(state_dir=state_dir, api_url=AUTHORITY_URL)


@pytest.fixture
def machine(state_dir: Path) -> MachineIdentity:
    """Machine identity with fixed host identifiers."""
    return MachineIdentity(state_dir, identifier_source=lambda: ["test-host-0001"])


@pytest.fixture
def service(
    settings: Settings,
    machine: MachineIdentity,
    client: LicenseAuthorityClient,
    clock: FrozenClock,
) -> LicenseService:
    """LicenseService wired to the fake authority and frozen clock."""
    return LicenseService(settings, machine=machine, client=client, clock=clock)
