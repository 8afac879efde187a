"""Tests for the sealed license cache and its expiry arithmetic."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest

from aios_pro.core.licensing import (
    CryptoBox,
    IntegrityError,
    LicenseCache,
    LicenseRecord,
    ValidationResult,
    cache_expiry,
    days_remaining,
    is_expired,
    is_in_grace_period,
)
from aios_pro.core.licensing.cache import grace_deadline, refreshed_record
from conftest import MACHINE_B, START, VALID_KEY, make_record


class TestLicenseCache:
    """Tests for LicenseCache read/write/delete."""

    def test_read_missing_returns_none(self, cache: LicenseCache) -> None:
        assert cache.read() is None

    def test_write_then_read(self, cache: LicenseCache) -> None:
        record = make_record()

        result = cache.write(record)

        assert result.success
        assert result.path == str(cache.path)
        assert cache.read() == record

    def test_file_is_not_plaintext(self, cache: LicenseCache) -> None:
        cache.write(make_record())

        content = cache.path.read_bytes()
        assert VALID_KEY.encode() not in content
        assert b"pro.memory" not in content

    def test_write_leaves_no_temp_files(self, cache: LicenseCache) -> None:
        cache.write(make_record())
        cache.write(make_record(features=["pro.other"]))

        assert [p.name for p in cache.path.parent.iterdir()] == ["license.cache"]

    def test_write_replaces_previous(self, cache: LicenseCache) -> None:
        cache.write(make_record())
        cache.write(make_record(features=["pro.squads.*"]))

        record = cache.read()
        assert record is not None
        assert record.features == ["pro.squads.*"]

    def test_write_failure_is_reported_not_raised(self, tmp_path: Path, box: CryptoBox) -> None:
        """Unwritable location returns a failed WriteResult."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        cache = LicenseCache(blocker / "license.cache", box)

        result = cache.write(make_record())

        assert not result.success
        assert result.error is not None
        assert "writable" in result.error

    def test_delete_is_idempotent(self, cache: LicenseCache) -> None:
        cache.write(make_record())

        cache.delete()
        cache.delete()

        assert not cache.exists()
        assert cache.read() is None

    def test_tampered_file_is_quarantined(self, cache: LicenseCache) -> None:
        cache.write(make_record())
        sealed = bytearray(cache.path.read_bytes())
        sealed[len(sealed) // 2] ^= 0xFF
        cache.path.write_bytes(bytes(sealed))

        assert cache.read() is None
        assert not cache.path.exists()
        quarantined = list(cache.path.parent.glob("license.cache.corrupt-*"))
        assert len(quarantined) == 1

        # Stays absent rather than failing again
        assert cache.read() is None

    def test_repeated_tampering_keeps_latest_quarantine_only(self, cache: LicenseCache) -> None:
        for _ in range(3):
            cache.write(make_record())
            cache.path.write_bytes(b"garbage that is not a sealed file at all, long enough")
            assert cache.read() is None

        quarantined = list(cache.path.parent.glob("license.cache.corrupt-*"))
        assert len(quarantined) == 1

    def test_write_refused_when_reopen_fails(
        self, cache: LicenseCache, box: CryptoBox, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Sealed bytes that cannot be opened again never replace the cache."""
        cache.write(make_record())
        before = cache.path.read_bytes()

        def broken_open(sealed: bytes) -> dict[str, Any]:
            raise IntegrityError("Integrity check failed")

        monkeypatch.setattr(box, "open_document", broken_open)

        result = cache.write(make_record(features=["pro.other"]))

        assert result.success is False
        assert result.error is not None
        assert "Serialization check failed" in result.error
        assert cache.path.read_bytes() == before

    def test_write_refused_when_content_changes(
        self, cache: LicenseCache, box: CryptoBox, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        cache.write(make_record())
        before = cache.path.read_bytes()
        original_open = box.open_document

        def altering_open(sealed: bytes) -> dict[str, Any]:
            document = original_open(sealed)
            document["features"] = ["pro.everything.*"]
            return document

        monkeypatch.setattr(box, "open_document", altering_open)

        result = cache.write(make_record(features=["pro.other"]))

        assert result.success is False
        assert cache.path.read_bytes() == before
        monkeypatch.undo()
        record = cache.read()
        assert record is not None
        assert record.features == ["pro.memory.*", "pro.squads.premium"]

    def test_foreign_file_reads_as_absent(self, cache: LicenseCache) -> None:
        """A cache copied from another machine is treated as no license."""
        foreign = LicenseCache(cache.path, CryptoBox(MACHINE_B))
        foreign.write(make_record())

        assert cache.read() is None
        assert not cache.path.exists()

    def test_invalid_shape_reads_as_absent(self, cache: LicenseCache, box: CryptoBox) -> None:
        cache.path.parent.mkdir(parents=True)
        cache.path.write_bytes(box.seal_document({"unexpected": True}))

        assert cache.read() is None
        assert list(cache.path.parent.glob("license.cache.corrupt-*"))


class TestRecordDefaults:
    """Tests for older records missing fields."""

    def test_missing_windows_use_defaults(self) -> None:
        record = LicenseRecord.model_validate(
            {"key": VALID_KEY, "activatedAt": START.isoformat(), "features": ["pro.x"]}
        )

        assert record.cache_valid_days == 30
        assert record.grace_period_days == 7

    def test_null_windows_use_defaults(self) -> None:
        record = LicenseRecord.model_validate(
            {
                "key": VALID_KEY,
                "activatedAt": START.isoformat(),
                "cacheValidDays": None,
                "gracePeriodDays": None,
            }
        )

        assert record.cache_valid_days == 30
        assert record.grace_period_days == 7

    def test_naive_timestamps_are_utc(self) -> None:
        record = LicenseRecord.model_validate({"key": VALID_KEY, "activatedAt": "2026-01-15T12:00:00"})

        assert record.activated_at == START

    def test_wire_format_uses_camel_case(self) -> None:
        wire = make_record().to_wire()

        assert "activatedAt" in wire
        assert "cacheValidDays" in wire
        assert "gracePeriodDays" in wire
        assert "lastValidated" in wire


class TestExpiry:
    """Tests for expiry and grace arithmetic."""

    def test_cache_expiry_from_activation(self) -> None:
        assert cache_expiry(make_record()) == START + timedelta(days=30)

    def test_cache_expiry_from_last_validation(self) -> None:
        """Revalidation resets the clock."""
        record = make_record(last_validated=START + timedelta(days=20))

        assert cache_expiry(record) == START + timedelta(days=50)

    def test_not_expired_at_boundary(self) -> None:
        record = make_record()
        boundary = START + timedelta(days=30)

        assert not is_expired(record, boundary)
        assert is_expired(record, boundary + timedelta(seconds=1))

    def test_grace_window(self) -> None:
        record = make_record()

        assert not is_in_grace_period(record, START + timedelta(days=29))
        assert is_in_grace_period(record, START + timedelta(days=31))
        assert is_in_grace_period(record, grace_deadline(record))
        assert not is_in_grace_period(record, grace_deadline(record) + timedelta(seconds=1))

    def test_days_remaining_is_signed(self) -> None:
        record = make_record()

        assert days_remaining(record, START) == 30
        assert days_remaining(record, START + timedelta(days=29, hours=12)) == 1
        assert days_remaining(record, START + timedelta(days=32)) == -2

    def test_static_helpers_on_cache(self) -> None:
        record = make_record()
        now = START + timedelta(days=31)

        assert LicenseCache.is_expired(record, now)
        assert LicenseCache.is_in_grace_period(record, now)
        assert LicenseCache.days_remaining(record, now) == -1


class TestRefreshedRecord:
    """Tests for applying a validation to a cached record."""

    def test_updates_fields_and_keeps_key(self) -> None:
        record = make_record()
        result = ValidationResult(
            valid=True,
            features=["pro.squads.*"],
            seats={"used": 2, "max": 10},
            cache_valid_days=14,
            grace_period_days=3,
        )
        now = START + timedelta(days=5)

        updated = refreshed_record(record, result, now)

        assert updated.key == record.key
        assert updated.activated_at == record.activated_at
        assert updated.features == ["pro.squads.*"]
        assert updated.seats.max == 10
        assert updated.cache_valid_days == 14
        assert updated.grace_period_days == 3
        assert updated.last_validated == now

    def test_missing_fields_are_kept(self) -> None:
        record = make_record()

        updated = refreshed_record(record, ValidationResult(valid=True), START)

        assert updated.features == record.features
        assert updated.seats == record.seats

    def test_last_validated_never_moves_back(self) -> None:
        later = START + timedelta(days=10)
        record = make_record(last_validated=later)

        updated = refreshed_record(record, ValidationResult(valid=True), START + timedelta(days=2))

        assert updated.last_validated == later
