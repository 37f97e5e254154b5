from __future__ import annotations

from datetime import datetime, timezone
from unittest import mock

import pytest

from trackit.clock import FixedClock
from trackit.errors import AlreadyExistsError, InvalidInputError
from trackit.memory import InMemoryUserDirectory
from trackit.models import User
from trackit.security import PasswordDigest
from trackit.users import (
    INVALID_CREDENTIALS,
    UserRegistry,
    normalize_username,
    validate_password_strength,
)

NOW = datetime(2025, 10, 10, tzinfo=timezone.utc)


@pytest.fixture()
def directory() -> InMemoryUserDirectory:
    return InMemoryUserDirectory()


@pytest.fixture()
def registry(directory: InMemoryUserDirectory) -> UserRegistry:
    return UserRegistry(directory, PasswordDigest(rounds=1_000), clock=FixedClock(NOW))


def test_normalize_username_trims_and_lowercases() -> None:
    assert normalize_username("  Lana ") == "lana"
    with pytest.raises(InvalidInputError):
        normalize_username(None)


def test_register_stores_normalized_user(registry: UserRegistry, directory: InMemoryUserDirectory) -> None:
    user_id = registry.register("  Lana ", " lana@example.com ", "Passw0rd!")

    stored = directory.find_by_username("lana")
    assert stored is not None
    assert stored.id == user_id
    assert stored.email == "lana@example.com"
    assert stored.created_at == NOW
    assert len(stored.password_hash) == 32
    assert len(stored.password_salt) == 32


def test_register_blank_email_is_stored_as_none(registry: UserRegistry) -> None:
    registry.register("noemail", "   ", "Passw0rd!")
    user = registry.lookup("NoEmail")
    assert user is not None
    assert user.email is None


def test_register_rejects_duplicate_normalized_username(registry: UserRegistry) -> None:
    registry.register("Lana", None, "Passw0rd!")
    with pytest.raises(AlreadyExistsError):
        registry.register("LANA", None, "An0ther!")


@pytest.mark.parametrize(
    ("username", "password"),
    [("", "Passw0rd!"), ("   ", "Passw0rd!"), (None, "Passw0rd!"), ("lana", ""), ("lana", "   "), ("lana", None)],
)
def test_register_rejects_blank_input(registry: UserRegistry, username, password) -> None:
    with pytest.raises(InvalidInputError):
        registry.register(username, None, password)


def test_insert_race_surfaces_as_already_exists(directory: InMemoryUserDirectory) -> None:
    class RacingDirectory(InMemoryUserDirectory):
        def exists(self, username: str) -> bool:
            return False

    racing = RacingDirectory()
    registry = UserRegistry(racing, PasswordDigest(rounds=1_000), clock=FixedClock(NOW))
    registry.register("lana", None, "Passw0rd!")
    with pytest.raises(AlreadyExistsError):
        registry.register("Lana", None, "Passw0rd!")


def test_login_succeeds_with_any_username_casing(registry: UserRegistry) -> None:
    user_id = registry.register("Lana", None, "Passw0rd!")

    result = registry.login(" LANA ", "Passw0rd!")

    assert result.success
    assert result.error is None
    assert isinstance(result.user, User)
    assert result.user.id == user_id


def test_login_failures_share_one_generic_message(registry: UserRegistry) -> None:
    registry.register("lana", None, "Passw0rd!")

    wrong_password = registry.login("lana", "nope")
    unknown_user = registry.login("ghost", "Passw0rd!")
    blank = registry.login("", "")

    for result in (wrong_password, unknown_user, blank):
        assert not result.success
        assert result.user is None
        assert result.error == INVALID_CREDENTIALS


@pytest.mark.parametrize(
    "password",
    ["Sh0rt", "NoDigits!", "n0uppercase!", "N0Symbols1"],
)
def test_password_policy_rejects_weak_passwords(password: str) -> None:
    with pytest.raises(InvalidInputError):
        validate_password_strength(password)


def test_password_policy_accepts_strong_password() -> None:
    validate_password_strength("Str0ng!pw")


def test_unknown_user_login_still_runs_the_password_hash(registry: UserRegistry) -> None:
    with mock.patch.object(PasswordDigest, "verify", autospec=True, return_value=False) as verify:
        result = registry.login("ghost", "Passw0rd!")

    assert not result.success
    assert result.error == INVALID_CREDENTIALS
    verify.assert_called_once()


def test_whitespace_password_is_rejected_before_hashing(registry: UserRegistry) -> None:
    registry.register("lana", None, "Passw0rd!")

    with mock.patch.object(PasswordDigest, "verify", autospec=True) as verify:
        result = registry.login("lana", "   ")

    assert not result.success
    assert result.error == INVALID_CREDENTIALS
    verify.assert_not_called()
