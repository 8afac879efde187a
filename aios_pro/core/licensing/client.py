"""
License authority client.

Stateless protocol client for activate / validate / deactivate plus a
reachability probe. One round-trip per call, short timeouts, no retries:
the host decides how to fall back.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx
from pydantic import ValidationError

from aios_pro.core.licensing.crypto import mask_key
from aios_pro.core.licensing.errors import ActivationError, ActivationErrorCode, NetworkError
from aios_pro.core.licensing.models import LicenseRecord, ValidationResult

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://license.synkra.ai"
DEFAULT_TIMEOUT = 10.0
DEFAULT_PROBE_TIMEOUT = 3.0

ACTIVATE_PATH = "/v1/licenses/activate"
VALIDATE_PATH = "/v1/licenses/validate"
DEACTIVATE_PATH = "/v1/licenses/deactivate"
HEALTH_PATH = "/v1/health"


class LicenseAuthorityClient:
    """
    HTTP client for the remote license authority.

    Usage:
        client = LicenseAuthorityClient("https://license.synkra.ai")
        record = client.activate(key, machine_id, "0.1.0")
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize client.

        Args:
            base_url: Root URL of the license authority
            timeout: Timeout for license requests in seconds
            probe_timeout: Timeout for is_online() in seconds
            transport: Custom httpx transport (for testing)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    def _ensure_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> LicenseAuthorityClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # =========================================================================
    # Operations
    # =========================================================================

    def activate(
        self,
        key: str,
        machine_id: str,
        host_version: str | None = None,
        now: datetime | None = None,
    ) -> LicenseRecord:
        """
        Activate a license key on this machine.

        Args:
            key: License key
            machine_id: Identifier from MachineIdentity
            host_version: Host application version, sent when given
            now: Activation time to record when the authority omits activatedAt

        Raises:
            ActivationError: Authority rejected the key
            NetworkError: Authority unreachable or failing
        """
        payload: dict[str, Any] = {"key": key, "machineId": machine_id}
        if host_version:
            payload["aiosCoreVersion"] = host_version

        body = self._post(ACTIVATE_PATH, payload, key)
        body.setdefault("key", key)
        if now is not None and body.get("activatedAt") is None:
            body["activatedAt"] = now.isoformat()
        try:
            record = LicenseRecord.model_validate(body)
        except ValidationError as e:
            raise ActivationError(
                ActivationErrorCode.INVALID_RESPONSE,
                "License authority returned an invalid activation payload",
                {"errors": e.errors(include_url=False, include_context=False)},
            ) from e

        logger.info("Activated %s (%d features)", mask_key(record.key), len(record.features))
        return record

    def validate(self, key: str, machine_id: str) -> ValidationResult:
        """
        Revalidate a key. ``valid=False`` is returned, not raised.

        Raises:
            ActivationError: Authority rejected the request itself
            NetworkError: Authority unreachable or failing
        """
        body = self._post(VALIDATE_PATH, {"key": key, "machineId": machine_id}, key)
        try:
            result = ValidationResult.model_validate(body)
        except ValidationError as e:
            raise ActivationError(
                ActivationErrorCode.INVALID_RESPONSE,
                "License authority returned an invalid validation payload",
                {"errors": e.errors(include_url=False, include_context=False)},
            ) from e

        logger.debug("Validation of %s: valid=%s", mask_key(key), result.valid)
        return result

    def deactivate(self, key: str, machine_id: str) -> None:
        """
        Release this machine's seat.

        Raises:
            ActivationError: Authority rejected the request
            NetworkError: Authority unreachable or failing
        """
        self._post(DEACTIVATE_PATH, {"key": key, "machineId": machine_id}, key, expect_body=False)
        logger.info("Deactivated %s", mask_key(key))

    def is_online(self) -> bool:
        """Best-effort reachability probe. Never raises."""
        try:
            response = self._ensure_client().get(HEALTH_PATH, timeout=self.probe_timeout)
        except httpx.HTTPError as e:
            logger.debug("License authority unreachable: %s", e)
            return False
        return response.status_code < 500

    # =========================================================================
    # Transport
    # =========================================================================

    def _post(
        self,
        path: str,
        payload: dict[str, Any],
        key: str,
        expect_body: bool = True,
    ) -> dict[str, Any]:
        """POST JSON and return the decoded object body."""
        logger.debug("POST %s%s for %s", self.base_url, path, mask_key(key))
        try:
            response = self._ensure_client().post(path, json=payload)
        except httpx.TimeoutException as e:
            raise NetworkError(f"License authority timed out after {self.timeout:g}s") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Could not reach license authority: {e}") from e

        if response.status_code >= 500:
            raise NetworkError(f"License authority error (HTTP {response.status_code})")
        if response.status_code >= 400:
            raise _rejection(response)

        if not expect_body and not response.content:
            return {}

        try:
            body = response.json()
        except ValueError as e:
            if not expect_body:
                return {}
            raise ActivationError(
                ActivationErrorCode.INVALID_RESPONSE,
                "License authority returned a non-JSON response",
                {"status": response.status_code},
            ) from e

        if not isinstance(body, dict):
            if not expect_body:
                return {}
            raise ActivationError(
                ActivationErrorCode.INVALID_RESPONSE,
                "License authority returned an unexpected response",
                {"status": response.status_code},
            )
        return body


def _rejection(response: httpx.Response) -> ActivationError:
    """Build an ActivationError from a 4xx response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    error: dict[str, Any] = {}
    if isinstance(body, dict):
        nested = body.get("error")
        error = nested if isinstance(nested, dict) else body

    raw_code = error.get("code")
    code = ActivationErrorCode.parse(raw_code) if raw_code else _code_for_status(response.status_code)

    details = error.get("details")
    details = dict(details) if isinstance(details, dict) else {}
    details.setdefault("status", response.status_code)
    if code == ActivationErrorCode.UNKNOWN and raw_code:
        details.setdefault("code", raw_code)

    message = error.get("message")
    return ActivationError(code, message if isinstance(message, str) else None, details)


def _code_for_status(status: int) -> ActivationErrorCode:
    if status == 429:
        return ActivationErrorCode.RATE_LIMITED
    if status in (401, 403, 404):
        return ActivationErrorCode.INVALID_KEY
    return ActivationErrorCode.UNKNOWN
