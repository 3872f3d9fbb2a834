"""Tests for bcrypt password hashing."""

from command_core.core.passwords import hash_password, verify_password


def test_hash_round_trip():
    encoded = hash_password("Secret1!", rounds=4)
    assert encoded.startswith("$2b$04$")
    assert verify_password("Secret1!", encoded)
    assert not verify_password("Secret2!", encoded)


def test_same_password_gets_distinct_salts():
    assert hash_password("Secret1!", 4) != hash_password("Secret1!", 4)


def test_long_passwords_hash_and_verify():
    password = "Aa1!" + "x" * 120
    encoded = hash_password(password, 4)
    assert verify_password(password, encoded)


def test_malformed_hash_never_verifies():
    assert not verify_password("x", "")
    assert not verify_password("x", "md5$1$zz$aa")
    assert not verify_password("x", "pbkdf2_sha256$1000$00$00")
