"""
Tests for password hashing and verification.
"""

from passlib.hash import bcrypt

from messagely.credentials import CredentialStore


class TestHash:

    def test_hash_is_not_plaintext(self, credentials):
        hashed = credentials.hash("hunter2")
        assert hashed != "hunter2"
        assert "hunter2" not in hashed

    def test_hash_is_salted(self, credentials):
        """Same password hashes differently each time."""
        assert credentials.hash("hunter2") != credentials.hash("hunter2")

    def test_hash_records_cost_factor(self):
        hashed = CredentialStore(rounds=5).hash("hunter2")
        assert hashed.startswith("$bcrypt-sha256$")
        assert ",r=5$" in hashed


class TestVerify:

    def test_correct_password(self, credentials):
        hashed = credentials.hash("hunter2")
        assert credentials.verify("hunter2", hashed) is True

    def test_wrong_password(self, credentials):
        hashed = credentials.hash("hunter2")
        assert credentials.verify("hunter3", hashed) is False

    def test_hash_from_other_cost_still_verifies(self, credentials):
        hashed = CredentialStore(rounds=5).hash("hunter2")
        assert credentials.verify("hunter2", hashed) is True

    def test_difference_past_72_bytes_detected(self, credentials):
        """bcrypt alone ignores everything after byte 72."""
        prefix = "a" * 72
        hashed = credentials.hash(prefix + "RIGHT")
        assert credentials.verify(prefix + "RIGHT", hashed) is True
        assert credentials.verify(prefix + "WRONG", hashed) is False

    def test_plain_bcrypt_hash_still_verifies(self, credentials):
        hashed = bcrypt.using(rounds=4).hash("hunter2")
        assert credentials.verify("hunter2", hashed) is True
        assert credentials.verify("hunter3", hashed) is False

    def test_malformed_hash_returns_false(self, credentials):
        assert credentials.verify("hunter2", "not-a-hash") is False

    def test_truncated_bcrypt_hash_returns_false(self, credentials):
        assert credentials.verify("hunter2", "$2b$04$tooshort") is False

    def test_empty_hash_returns_false(self, credentials):
        assert credentials.verify("hunter2", "") is False
        assert credentials.verify("hunter2", None) is False

    def test_dummy_verify_does_not_raise(self, credentials):
        credentials.dummy_verify()
