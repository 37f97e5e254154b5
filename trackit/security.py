"""Password hashing helpers."""
from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import Optional, Tuple

from .errors import InvalidInputError

_PBKDF2_DIGEST = "sha256"
_PBKDF2_ROUNDS = 100_000
_SALT_BYTES = 32
_HASH_BYTES = 32


class PasswordDigest:
    """Derive and verify salted PBKDF2-HMAC-SHA256 password hashes.

    Every call to :meth:`derive` draws a fresh random salt, so hashing the same
    password twice yields different digests. :meth:`verify` compares digests
    in constant time.
    """

    def __init__(
        self,
        *,
        rounds: int = _PBKDF2_ROUNDS,
        salt_bytes: int = _SALT_BYTES,
        hash_bytes: int = _HASH_BYTES,
    ) -> None:
        if rounds < 1 or salt_bytes < 1 or hash_bytes < 1:
            raise ValueError("PBKDF2 parameters must be positive")
        self._rounds = rounds
        self._salt_bytes = salt_bytes
        self._hash_bytes = hash_bytes

    @property
    def rounds(self) -> int:
        return self._rounds

    def derive(self, password: Optional[str]) -> Tuple[bytes, bytes]:
        """Return ``(hash, salt)`` for ``password``."""

        if password is None:
            raise InvalidInputError("Password is required")
        salt = secrets.token_bytes(self._salt_bytes)
        return self._digest(password, salt), salt

    def verify(self, password: Optional[str], hash_bytes: Optional[bytes], salt: Optional[bytes]) -> bool:
        if password is None:
            raise InvalidInputError("Password is required")
        if hash_bytes is None:
            raise InvalidInputError("Stored hash is required")
        if salt is None:
            raise InvalidInputError("Stored salt is required")

        calculated = self._digest(password, salt)
        return hmac.compare_digest(bytes(hash_bytes), calculated)

    def _digest(self, password: str, salt: bytes) -> bytes:
        return hashlib.pbkdf2_hmac(
            _PBKDF2_DIGEST,
            password.encode("utf-8"),
            bytes(salt),
            self._rounds,
            dklen=self._hash_bytes,
        )


__all__ = ["PasswordDigest"]
