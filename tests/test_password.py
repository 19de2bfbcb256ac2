import pytest

from security.password import BCRYPT_MAX_BYTES, burn_verification, hash_password, verify_password
from security.tokens import hash_token, new_token, token_matches
from tests.conftest import STRONG_PASSWORD


def test_hash_is_salted_and_verifies(ctx):
    first = hash_password(STRONG_PASSWORD)
    second = hash_password(STRONG_PASSWORD)

    assert first != second
    assert first.startswith("$2")
    assert verify_password(STRONG_PASSWORD, first)
    assert verify_password(STRONG_PASSWORD, second)
    assert not verify_password("Wrong$Horse9Battery", first)


def test_hash_uses_configured_rounds(ctx):
    assert hash_password(STRONG_PASSWORD).startswith("$2b$04$")


@pytest.mark.parametrize("bad", ["", None, "a" * (BCRYPT_MAX_BYTES + 1)])
def test_hash_refuses_empty_or_oversized_input(ctx, bad):
    with pytest.raises(ValueError):
        hash_password(bad)


def test_verify_never_raises_on_bad_input(ctx):
    stored = hash_password(STRONG_PASSWORD)

    assert verify_password("", stored) is False
    assert verify_password(STRONG_PASSWORD, "") is False
    assert verify_password(STRONG_PASSWORD, "not-a-bcrypt-hash") is False
    assert verify_password("a" * 100, stored) is False


def test_burn_verification_accepts_anything(ctx):
    burn_verification("")
    burn_verification(STRONG_PASSWORD)


def test_tokens_are_random_and_only_hashes_compare():
    raw = new_token()

    assert raw != new_token()
    assert len(raw) >= 43
    assert hash_token(raw) != raw
    assert len(hash_token(raw)) == 64
    assert token_matches(raw, hash_token(raw))
    assert not token_matches(new_token(), hash_token(raw))
    assert not token_matches("", hash_token(raw))
    assert not token_matches(raw, None)
