import re

import pytest

from vaultshare.core.credentials import (
    generate_device_token, generate_id, generate_salt, generate_token,
    hash_password, hash_token, verify_password
)

pytestmark = pytest.mark.unit


class TestPasswordHashing:
    """Test PBKDF2 password hashing."""

    def test_hash_is_deterministic_for_same_salt(self):
        """Same password and salt always derive the same hash."""
        salt = generate_salt()
        assert hash_password('s3cret-pass', salt) == hash_password('s3cret-pass', salt)

    def test_hash_is_64_hex_chars(self):
        digest = hash_password('s3cret-pass', generate_salt())
        assert re.fullmatch(r'[0-9a-f]{64}', digest)

    def test_different_salts_give_different_hashes(self):
        assert hash_password('s3cret-pass', 'a' * 32) != hash_password('s3cret-pass', 'b' * 32)

    def test_verify_password(self):
        """Verification accepts the right password and rejects any other."""
        salt = generate_salt()
        stored = hash_password('s3cret-pass', salt)
        assert verify_password('s3cret-pass', salt, stored) is True
        assert verify_password('s3cret-pasS', salt, stored) is False
        assert verify_password('', salt, stored) is False


class TestRandomValues:
    """Test salts, tokens and ids."""

    def test_salt_is_16_bytes_hex(self):
        assert re.fullmatch(r'[0-9a-f]{32}', generate_salt())

    def test_token_default_length(self):
        assert re.fullmatch(r'[0-9a-f]{64}', generate_token())

    def test_token_custom_length(self):
        assert len(generate_token(8)) == 16

    def test_tokens_are_unique(self):
        assert len({generate_token() for _ in range(50)}) == 50

    def test_id_is_uuid4(self):
        assert re.fullmatch(r'[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}', generate_id())


class TestTokenHashing:
    """Test one-way token hashing."""

    def test_known_sha256(self):
        assert hash_token('abc') == 'ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad'

    def test_device_token_pair(self):
        """The returned hash matches the plaintext and differs from it."""
        token, token_hash = generate_device_token()
        assert hash_token(token) == token_hash
        assert token != token_hash
