"""Authenticated encryption for small JSON payloads kept in client cookies."""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import os
import re
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

_KEY_BYTES = 32
_NONCE_BYTES = 12
_TAG_BYTES = 16
_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")


def derive_key(secret: str) -> bytes:
    """Turn an operator-supplied secret into a 32 byte AES key.

    Hex (64 chars) and base64/base64url strings that decode to exactly 32
    bytes are used as-is; anything else is hashed with SHA-256.
    """
    trimmed = secret.strip()
    if _HEX_KEY.match(trimmed):
        return bytes.fromhex(trimmed)

    normalized = trimmed.replace("+", "-").replace("/", "_").rstrip("=")
    try:
        decoded = base64.urlsafe_b64decode(normalized + "=" * (-len(normalized) % 4))
    except (binascii.Error, ValueError):
        decoded = b""
    if len(decoded) == _KEY_BYTES:
        return decoded

    return hashlib.sha256(trimmed.encode("utf-8")).digest()


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


class SealedCodec:
    """Seal and unseal JSON payloads with AES-256-GCM.

    Tokens have the shape ``nonce.tag.ciphertext`` with every part base64url
    encoded, so they can travel in cookies or query strings unescaped.
    """

    def __init__(self, *, secret: str) -> None:
        if not secret or not secret.strip():
            raise ValueError("Sealing secret must be provided.")
        self._aead = AESGCM(derive_key(secret))

    def seal(self, payload: Any) -> str:
        """Encrypt a JSON-serializable payload with a fresh random nonce."""
        nonce = os.urandom(_NONCE_BYTES)
        plaintext = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        sealed = self._aead.encrypt(nonce, plaintext, None)
        ciphertext, tag = sealed[:-_TAG_BYTES], sealed[-_TAG_BYTES:]
        return ".".join(
            (_b64url_encode(nonce), _b64url_encode(tag), _b64url_encode(ciphertext))
        )

    def unseal(self, token: str | None) -> Any:
        """Return the decrypted payload, or ``None`` for any malformed token."""
        if not token:
            return None
        parts = token.split(".")
        if len(parts) != 3 or not all(parts):
            return None
        try:
            nonce, tag, ciphertext = (_b64url_decode(part) for part in parts)
        except (binascii.Error, ValueError):
            return None
        if len(nonce) != _NONCE_BYTES or len(tag) != _TAG_BYTES:
            return None
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag:
            logger.debug("Discarding sealed value that failed authentication.")
            return None
        try:
            return json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return None


__all__ = ["SealedCodec", "derive_key"]
