import logging

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

DEFAULT_ROUNDS = 12


class CredentialStore:
    """
    Salted one-way password hashing backed by bcrypt.

    Passwords are SHA-256 digested before bcrypt (bcrypt_sha256), so bytes
    past bcrypt's 72-byte limit still count. Plain bcrypt hashes are
    accepted for verification only. The cost factor is fixed per instance;
    hashes made with another cost still verify because the rounds are
    recorded in the hash itself.
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS):
        self.rounds = rounds
        self._context = CryptContext(
            schemes=["bcrypt_sha256", "bcrypt"],
            deprecated=["bcrypt"],
            bcrypt_sha256__rounds=rounds,
        )

    def hash(self, plaintext: str) -> str:
        return self._context.hash(plaintext)

    def verify(self, plaintext: str, opaque_hash: str) -> bool:
        """Return True only on a match; malformed or unknown hashes are a mismatch."""
        if not opaque_hash:
            return False
        try:
            return self._context.verify(plaintext, opaque_hash)
        except (ValueError, TypeError) as e:
            logger.warning(f"Rejected unverifiable password hash: {e.__class__.__name__}")
            return False

    def dummy_verify(self) -> None:
        """Spend a verification's worth of CPU without a stored hash."""
        self._context.dummy_verify()
