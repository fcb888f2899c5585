"""
Field-level encryption for sensitive columns.

Values are stored either as plaintext (no secret configured) or as
``enc:<base64(nonce | ciphertext)>``.  One master key is derived per secret
with PBKDF2-HMAC-SHA256 when the codec is built; each value then only draws a
fresh nonce, so sealing and opening never re-run the key derivation.  AES-256-GCM
authenticates the payload, so a wrong key fails instead of producing garbage.
"""

from __future__ import annotations

import base64
import binascii
import functools
import logging
import os
from dataclasses import dataclass
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

log = logging.getLogger(__name__)

__all__ = [
    "ENCRYPTED_PREFIX",
    "ALGORITHM_ID",
    "Plaintext",
    "Ciphertext",
    "StoredValue",
    "parse_stored",
    "render_stored",
    "FieldCodec",
]

ENCRYPTED_PREFIX = "enc:"
ALGORITHM_ID = "aes-256-gcm+pbkdf2-sha256-master"

KEY_SIZE = 32
NONCE_SIZE = 12
KDF_ITERATIONS = 100_000
KDF_SALT = b"wxstore.field-codec.v1"


@dataclass(frozen=True)
class Plaintext:
    value: str


@dataclass(frozen=True)
class Ciphertext:
    token: str
    algorithm: str = ALGORITHM_ID


StoredValue = Union[Plaintext, Ciphertext]


def parse_stored(value: str) -> StoredValue:
    """Interpret a column value as plaintext or a tagged ciphertext."""

    if value.startswith(ENCRYPTED_PREFIX):
        return Ciphertext(token=value[len(ENCRYPTED_PREFIX) :])
    return Plaintext(value)


def render_stored(value: StoredValue) -> str:
    if isinstance(value, Ciphertext):
        return f"{ENCRYPTED_PREFIX}{value.token}"
    return value.value


@functools.lru_cache(maxsize=8)
def _derive_master_key(secret: str) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=KDF_SALT,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(secret.encode("utf-8"))


class FieldCodec:
    """Encrypt/decrypt individual string fields; pass-through without a secret."""

    def __init__(self, secret: str | None = None):
        self._secret = secret or None
        # The only key-derivation call; seal/unseal reuse the cipher.
        self._cipher = AESGCM(_derive_master_key(self._secret)) if self._secret else None

    @property
    def enabled(self) -> bool:
        return self._cipher is not None

    def seal(self, value: str) -> StoredValue:
        if self._cipher is None:
            return Plaintext(value)
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._cipher.encrypt(nonce, value.encode("utf-8"), None)
        token = base64.urlsafe_b64encode(nonce + sealed).decode("ascii")
        return Ciphertext(token=token)

    def unseal(self, value: StoredValue) -> str | None:
        if isinstance(value, Plaintext):
            return value.value
        if self._cipher is None:
            log.debug("Encrypted field present but no secret is configured")
            return None
        try:
            raw = base64.urlsafe_b64decode(value.token.encode("ascii"))
        except (binascii.Error, ValueError, UnicodeEncodeError):
            log.debug("Encrypted field payload is not valid base64")
            return None
        if len(raw) <= NONCE_SIZE:
            return None
        try:
            plain = self._cipher.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], None)
            return plain.decode("utf-8")
        except (InvalidTag, UnicodeDecodeError):
            log.debug("Failed to decrypt field (wrong key or damaged payload)")
            return None

    def encrypt(self, value: str | None) -> str | None:
        """Return the column text for ``value``; empty input stores ``None``."""

        if not value:
            return None
        return render_stored(self.seal(value))

    def decrypt(self, value: str | None) -> str | None:
        """Return the plaintext for a stored column, or ``None`` if it cannot be read."""

        if not value:
            return None
        return self.unseal(parse_stored(value))
