from datetime import datetime, timedelta, timezone

import pytest

from tsureben.core.security import (
    create_access_token,
    decode_token,
    get_password_hash,
    is_teacher_email,
    token_expired,
    verify_password,
)


@pytest.mark.parametrize(
    ("email", "teacher"),
    [
        ("1@tsureben.jp", True),
        ("0123@tsureben.jp", True),
        ("12345@tsureben.jp", False),
        ("t123@tsureben.jp", False),
        ("taro@tsureben.jp", False),
    ],
)
def test_is_teacher_email(email, teacher):
    assert is_teacher_email(email) is teacher


def test_expired_token_still_decodes_without_exp_check():
    issued = datetime.now(timezone.utc) - timedelta(days=1)
    token = create_access_token("taro@tsureben.jp", issued_at=issued)

    with pytest.raises(ValueError):
        decode_token(token)
    claims = decode_token(token, verify_exp=False)
    assert claims["sub"] == "taro@tsureben.jp"
    assert token_expired(claims, datetime.now(timezone.utc))
    assert not token_expired(claims, issued + timedelta(minutes=5))


def test_password_hash_round_trip():
    hashed = get_password_hash("supersecure")
    assert verify_password("supersecure", hashed)
    assert not verify_password("wrong-password", hashed)
