"""User registration and authentication."""
from __future__ import annotations

import logging
from typing import Optional

from .clock import Clock, SystemClock
from .errors import AlreadyExistsError, InvalidInputError
from .models import LoginResult, User
from .ports import UserDirectory
from .security import PasswordDigest

logger = logging.getLogger("trackit.users")

INVALID_CREDENTIALS = "Invalid username or password"
MIN_PASSWORD_LENGTH = 6

_UNKNOWN_USER_SALT = bytes(32)
_UNKNOWN_USER_HASH = bytes(32)


def normalize_username(value: Optional[str]) -> str:
    if value is None:
        raise InvalidInputError("Username is required")
    return value.strip().lower()


def validate_password_strength(password: str) -> None:
    """Reject passwords that do not meet the account password policy.

    Registration surfaces call this before :meth:`UserRegistry.register`; the
    registry itself only requires a non-blank password.
    """

    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInputError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not any(ch.isdigit() for ch in password):
        raise InvalidInputError("Password must contain at least one digit")
    if not any(ch.isupper() for ch in password):
        raise InvalidInputError("Password must contain at least one uppercase letter")
    if all(ch.isalnum() for ch in password):
        raise InvalidInputError("Password must contain at least one symbol")


class UserRegistry:
    """Register and authenticate users against a :class:`UserDirectory`."""

    def __init__(
        self,
        directory: UserDirectory,
        digest: Optional[PasswordDigest] = None,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self._directory = directory
        self._digest = digest or PasswordDigest()
        self._clock = clock or SystemClock()

    def register(self, username: Optional[str], email: Optional[str], password: Optional[str]) -> int:
        """Create a user and return its id."""

        if not username or not username.strip():
            raise InvalidInputError("Username is required")
        if not password or not password.strip():
            raise InvalidInputError("Password is required")

        normalized = normalize_username(username)
        if self._directory.exists(normalized):
            raise AlreadyExistsError("Username already exists")

        password_hash, salt = self._digest.derive(password)
        user = User(
            username=normalized,
            email=email.strip() if email and email.strip() else None,
            password_hash=password_hash,
            password_salt=salt,
            created_at=self._clock.now(),
        )
        # The directory re-checks uniqueness atomically and raises
        # AlreadyExistsError if a concurrent registration won.
        user_id = self._directory.insert(user)
        logger.info("Registered user %s (#%s)", normalized, user_id)
        return user_id

    def lookup(self, username: Optional[str]) -> Optional[User]:
        """Return the user registered as ``username``, if any."""

        if not username or not username.strip():
            return None
        return self._directory.find_by_username(normalize_username(username))

    def login(self, username: Optional[str], password: Optional[str]) -> LoginResult:
        if not username or not username.strip() or not password or not password.strip():
            return LoginResult.fail(INVALID_CREDENTIALS)

        normalized = normalize_username(username)
        user = self._directory.find_by_username(normalized)
        if user is None:
            # Same hashing cost as a known user, so timing does not reveal the username.
            self._digest.verify(password, _UNKNOWN_USER_HASH, _UNKNOWN_USER_SALT)
            logger.warning("Failed login attempt for unknown user")
            return LoginResult.fail(INVALID_CREDENTIALS)

        if not self._digest.verify(password, user.password_hash, user.password_salt):
            logger.warning("Failed login attempt for user #%s", user.id)
            return LoginResult.fail(INVALID_CREDENTIALS)

        return LoginResult.ok(user)


__all__ = [
    "INVALID_CREDENTIALS",
    "UserRegistry",
    "normalize_username",
    "validate_password_strength",
]
