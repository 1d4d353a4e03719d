from datetime import datetime, timezone

import pytest

from authstarter.core.errors import AppError, ErrorCode
from authstarter.core.security import (
    check_password_policy, ensure_aware, hash_password, hash_token, normalize_email,
    password_meets_policy, password_needs_rehash, pwd_ctx, random_token, token_matches,
    verify_password,
)


@pytest.mark.parametrize(
    "password,ok",
    [
        ("Passw0rd!", True),
        ("Sh0rt!a", False),
        ("passw0rd!", False),
        ("PASSW0RD!", False),
        ("Password!", False),
        ("Passw0rdd", False),
        ("", False),
    ],
)
def test_password_policy(password, ok):
    assert password_meets_policy(password) is ok


def test_policy_violation_is_validation_error():
    with pytest.raises(AppError) as exc:
        check_password_policy("weak")
    assert exc.value.status_code == 400
    assert exc.value.code == ErrorCode.VALIDATION


def test_argon2_hash_verifies_and_is_salted():
    first = hash_password("Passw0rd!")
    second = hash_password("Passw0rd!")

    assert first.startswith("$argon2")
    assert first != second
    assert verify_password("Passw0rd!", first)
    assert not verify_password("Passw0rd?", first)


def test_verify_password_without_hash_is_false():
    assert verify_password("Passw0rd!", None) is False
    assert verify_password("Passw0rd!", "not-a-hash") is False


def test_legacy_pbkdf2_hash_still_verifies_but_needs_rehash():
    legacy = pwd_ctx.handler("pbkdf2_sha256").hash("Passw0rd!")

    assert verify_password("Passw0rd!", legacy)
    assert password_needs_rehash(legacy)
    assert not password_needs_rehash(hash_password("Passw0rd!"))


def test_random_tokens_are_urlsafe_and_unique():
    tokens = {random_token(32) for _ in range(50)}

    assert len(tokens) == 50
    for t in tokens:
        assert len(t) == 43
        assert "=" not in t and "+" not in t and "/" not in t


def test_token_hash_comparison():
    raw = random_token()
    stored = hash_token(raw)

    assert len(stored) == 64
    assert stored != raw
    assert token_matches(raw, stored)
    assert not token_matches(raw + "x", stored)
    assert not token_matches(raw, None)


def test_ensure_aware_assumes_utc_for_naive():
    naive = datetime(2024, 1, 1, 12, 0)

    assert ensure_aware(naive).tzinfo is timezone.utc
    assert ensure_aware(None) is None


def test_normalize_email():
    assert normalize_email("  User@Example.COM ") == "user@example.com"
