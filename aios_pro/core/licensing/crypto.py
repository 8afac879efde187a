"""
Machine-bound sealing for local license files.

Sealed layout:
    MAGIC(4) | VERSION(1) | NONCE(12) | AES-256-GCM ciphertext+tag | HMAC-SHA256(32)

The outer HMAC uses an application-level key, so tampering is detected on
any machine (IntegrityError). The content key is derived from the machine
identity, so a file copied from another host passes the HMAC but fails
decryption (KeyMismatchError).
"""

from __future__ import annotations

import json
import os
import re
from typing import Any

from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from aios_pro.core.licensing.errors import IntegrityError, KeyMismatchError

MAGIC = b"AIOS"
FORMAT_VERSION = 1
NONCE_SIZE = 12
GCM_TAG_SIZE = 16
MAC_SIZE = 32

# Fixed application salt, independent of any license key
APP_SALT = b"aios-pro/sealed-storage/v1"

_HEADER = MAGIC + bytes([FORMAT_VERSION])
_MIN_SEALED_SIZE = len(_HEADER) + NONCE_SIZE + GCM_TAG_SIZE + MAC_SIZE

# License key format: PRO-XXXX-XXXX-XXXX-XXXX
KEY_PREFIX = "PRO"
KEY_PATTERN = re.compile(rf"{KEY_PREFIX}-[A-Z0-9]{{4}}-[A-Z0-9]{{4}}-[A-Z0-9]{{4}}-[A-Z0-9]{{4}}")
MASK_CHAR = "*"


def _derive_key(material: bytes, purpose: bytes) -> bytes:
    """Derive a 256-bit key with HKDF-SHA256."""
    return HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=APP_SALT,
        info=b"aios-pro/" + purpose,
    ).derive(material)


class CryptoBox:
    """
    Symmetric sealing bound to one machine identity.

    Usage:
        box = CryptoBox(machine_id)
        sealed = box.seal(b"...")
        plaintext = box.open(sealed)
    """

    def __init__(self, machine_id: str):
        """
        Initialize box for a machine.

        Args:
            machine_id: Identifier from MachineIdentity
        """
        if not machine_id:
            raise ValueError("machine_id must not be empty")
        self._content_key = _derive_key(machine_id.encode("utf-8"), b"content")
        self._mac_key = _derive_key(APP_SALT, b"integrity")

    def seal(self, plaintext: bytes) -> bytes:
        """Encrypt and integrity-stamp plaintext."""
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = AESGCM(self._content_key).encrypt(nonce, plaintext, _HEADER)
        body = _HEADER + nonce + ciphertext
        return body + self._stamp(body)

    def open(self, sealed: bytes) -> bytes:
        """
        Verify and decrypt sealed bytes.

        Raises:
            IntegrityError: Stamp does not verify (tamper, corruption)
            KeyMismatchError: Intact, but sealed for another machine
        """
        if len(sealed) < _MIN_SEALED_SIZE:
            raise IntegrityError("Sealed data is truncated")

        body, stamp = sealed[:-MAC_SIZE], sealed[-MAC_SIZE:]
        verifier = hmac.HMAC(self._mac_key, hashes.SHA256())
        verifier.update(body)
        try:
            verifier.verify(stamp)
        except InvalidSignature:
            raise IntegrityError("Integrity check failed") from None

        if body[: len(MAGIC)] != MAGIC:
            raise IntegrityError("Not a sealed AIOS file")
        if body[len(MAGIC)] != FORMAT_VERSION:
            raise IntegrityError(f"Unsupported sealed format version: {body[len(MAGIC)]}")

        nonce = body[len(_HEADER) : len(_HEADER) + NONCE_SIZE]
        ciphertext = body[len(_HEADER) + NONCE_SIZE :]
        try:
            return AESGCM(self._content_key).decrypt(nonce, ciphertext, _HEADER)
        except InvalidTag:
            raise KeyMismatchError("Sealed data belongs to a different machine") from None

    def seal_document(self, document: dict[str, Any]) -> bytes:
        """Seal a JSON object."""
        return self.seal(json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8"))

    def open_document(self, sealed: bytes) -> dict[str, Any]:
        """
        Open sealed bytes holding a JSON object.

        Raises:
            IntegrityError: See open()
            KeyMismatchError: Wrong machine, or content is not a JSON object
        """
        plaintext = self.open(sealed)
        try:
            document = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise KeyMismatchError(f"Decrypted content is not valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise KeyMismatchError("Decrypted content is not a JSON object")
        return document

    @staticmethod
    def mask(key: str | None) -> str:
        return mask_key(key)

    @staticmethod
    def validate_key_format(key: object) -> bool:
        return validate_key_format(key)

    def _stamp(self, body: bytes) -> bytes:
        signer = hmac.HMAC(self._mac_key, hashes.SHA256())
        signer.update(body)
        return signer.finalize()


def validate_key_format(key: object) -> bool:
    """
    Check a license key against PRO-XXXX-XXXX-XXXX-XXXX.

    Groups are four uppercase letters or digits. Never raises.
    """
    if not isinstance(key, str):
        return False
    return KEY_PATTERN.fullmatch(key) is not None


def mask_key(key: str | None) -> str:
    """
    Mask a license key for display.

    Keeps the prefix and the first and last groups:
    PRO-AB12-****-****-CD34. Display only, never a lookup key.
    """
    if not key:
        return ""

    groups = key.split("-")
    if len(groups) >= 4:
        inner = [MASK_CHAR * len(group) for group in groups[2:-1]]
        return "-".join([groups[0], groups[1], *inner, groups[-1]])

    if len(key) <= 8:
        return MASK_CHAR * len(key)
    return key[:4] + MASK_CHAR * (len(key) - 8) + key[-4:]
