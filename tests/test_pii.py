from datetime import date

import pytest
from cryptography.fernet import Fernet, InvalidToken

from security.pii import _derive_fernet_key, decrypt_nric, encrypt_nric, mask_nric, nric_lookup_hash
from utils.validation import (
    is_valid_gender,
    is_valid_name,
    is_valid_nric,
    is_valid_who_am_i,
    parse_date_of_birth,
)


def test_nric_round_trips_under_the_configured_key(ctx):
    token = encrypt_nric(" s1234567d ")

    assert "S1234567D" not in token
    assert decrypt_nric(token) == "S1234567D"

    own = Fernet(_derive_fernet_key("test-secret"))
    assert own.decrypt(token.encode()).decode() == "S1234567D"
    with pytest.raises(InvalidToken):
        Fernet(_derive_fernet_key("another-secret")).decrypt(token.encode())


def test_dedicated_key_takes_precedence(ctx):
    ctx.config["NRIC_ENCRYPTION_KEY"] = Fernet.generate_key().decode()

    token = encrypt_nric("T7654321A")

    assert Fernet(ctx.config["NRIC_ENCRYPTION_KEY"].encode()).decrypt(token.encode()) == b"T7654321A"


def test_proper_fernet_key_is_used_as_is():
    key = Fernet.generate_key().decode()

    assert _derive_fernet_key(key) == key.encode()
    assert len(_derive_fernet_key("short passphrase")) == 44


def test_undecryptable_value_masks_fully(ctx):
    foreign = Fernet(Fernet.generate_key()).encrypt(b"S1234567D").decode()

    assert decrypt_nric(foreign) == ""
    assert mask_nric(decrypt_nric(foreign)) == "********"


def test_lookup_hash_ignores_case_and_padding(ctx):
    assert nric_lookup_hash("S1234567D") == nric_lookup_hash(" s1234567d ")
    assert nric_lookup_hash("S1234567D") != nric_lookup_hash("S1234567E")
    assert "S1234567D" not in nric_lookup_hash("S1234567D")


@pytest.mark.parametrize(
    "value, masked",
    [
        ("S1234567D", "S****567D"),
        ("G7654321X", "G****321X"),
        ("S12345", "********"),
        ("", "********"),
    ],
)
def test_mask_nric(value, masked):
    assert mask_nric(value) == masked


@pytest.mark.parametrize("nric", ["S1234567D", "t0000000z", "F9999999A", "G1234567B"])
def test_valid_nrics(nric):
    assert is_valid_nric(nric)


@pytest.mark.parametrize("nric", ["A1234567D", "S123456D", "S12345678D", "S1234567", "", None])
def test_invalid_nrics(nric):
    assert not is_valid_nric(nric)


def test_names():
    assert is_valid_name("Mei Ling")
    assert not is_valid_name("O'Brien")
    assert not is_valid_name("   ")
    assert not is_valid_name("a" * 51)


def test_gender_choices():
    assert is_valid_gender("Other")
    assert not is_valid_gender("male")


def test_date_of_birth_must_be_in_the_past():
    today = date(2026, 10, 1)

    assert parse_date_of_birth("1994-03-18", today=today) == date(1994, 3, 18)
    assert parse_date_of_birth("2026-10-01", today=today) is None
    assert parse_date_of_birth("1994-02-30", today=today) is None
    assert parse_date_of_birth(19940318, today=today) is None


def test_who_am_i_refuses_markup():
    assert is_valid_who_am_i("I like clean code & long walks.")
    assert not is_valid_who_am_i("<b>bold</b>")
    assert not is_valid_who_am_i("a > b")
    assert not is_valid_who_am_i("x" * 1001)
    assert not is_valid_who_am_i("   ")
