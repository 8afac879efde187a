"""
Sealed file storage.

One sealed JSON document per file, written atomically and verified
before it replaces the previous version.
"""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from aios_pro.core.licensing.crypto import CryptoBox
from aios_pro.core.licensing.errors import SealError
from aios_pro.core.licensing.models import WriteResult

logger = logging.getLogger(__name__)


class SealedFile:
    """A single sealed document on disk."""

    def __init__(self, path: Path, box: CryptoBox):
        """
        Initialize sealed file.

        Args:
            path: File location
            box: CryptoBox bound to this machine
        """
        self.path = Path(path)
        self.box = box

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> dict[str, Any] | None:
        """
        Read and open the document.

        Returns:
            Document, or None when absent or unreadable. Tampered and
            foreign files are quarantined first.
        """
        try:
            sealed = self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Could not read %s: %s", self.path, e)
            return None

        try:
            return self.box.open_document(sealed)
        except SealError as e:
            logger.warning("Discarding unreadable %s (%s): %s", self.path.name, type(e).__name__, e)
            self.quarantine()
            return None

    def write(self, model: BaseModel) -> WriteResult:
        """
        Seal and atomically write a model.

        The sealed bytes are opened and re-parsed before anything touches
        the disk; a mismatch aborts the write.

        Args:
            model: Model to persist (serialized by alias)

        Returns:
            WriteResult; never raises on I/O errors
        """
        document = model.model_dump(mode="json", by_alias=True)
        try:
            sealed = self.box.seal_document(document)
            reparsed = type(model).model_validate(self.box.open_document(sealed))
        except (SealError, ValidationError, TypeError, ValueError) as e:
            logger.error("Refusing to write %s: round-trip failed: %s", self.path.name, e)
            return WriteResult(success=False, path=str(self.path), error=f"Serialization check failed: {e}")

        if reparsed != model:
            logger.error("Refusing to write %s: round-trip changed the content", self.path.name)
            return WriteResult(
                success=False,
                path=str(self.path),
                error="Serialization check failed: content changed on round-trip",
            )

        try:
            self._atomic_write(sealed)
        except OSError as e:
            logger.warning("Could not write %s: %s", self.path, e)
            return WriteResult(
                success=False,
                path=str(self.path),
                error=f"Could not write {self.path}: {e.strerror or e}. "
                f"Check that {self.path.parent} is writable.",
            )

        return WriteResult(success=True, path=str(self.path))

    def delete(self) -> None:
        """Remove the file. Idempotent."""
        with contextlib.suppress(FileNotFoundError):
            self.path.unlink()

    def quarantine(self) -> Path | None:
        """
        Move an unreadable file out of the way.

        Renames to ``<name>.corrupt-<timestamp>``; unlinks when renaming
        fails. Only the most recent quarantine file is kept. Best effort:
        never raises.

        Returns:
            Quarantine path, or None if the file was removed or left alone
        """
        now = datetime.now(UTC)
        ts_str = now.strftime("%Y%m%d%H%M%S") + f"{now.microsecond:06d}"
        target = self.path.with_name(f"{self.path.name}.corrupt-{ts_str}")

        try:
            self.path.replace(target)
            logger.warning("Quarantined %s to %s", self.path.name, target.name)
            self._prune_quarantine(keep=target)
            return target
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Could not quarantine %s: %s", self.path, e)

        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove unreadable %s: %s", self.path, e)
        return None

    def _prune_quarantine(self, keep: Path) -> None:
        """Remove older quarantine files of this document."""
        for old in self.path.parent.glob(f"{self.path.name}.corrupt-*"):
            if old == keep:
                continue
            try:
                old.unlink()
            except OSError as e:
                logger.debug("Could not remove old quarantine file %s: %s", old, e)

    def _atomic_write(self, content: bytes) -> None:
        """Write to a temp file in the same directory, then rename."""
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        fd, temp_path = tempfile.mkstemp(
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(temp_path)
            raise
