"""
Credential hashing - bcrypt password hashing and activation tokens.

bcrypt generates a random 128-bit salt per hash and encodes cost, salt
and digest into a single self-describing string (``$2b$12$<salt><hash>``),
so the stored value is all that is needed to verify later.
"""

import logging
import secrets

import bcrypt

logger = logging.getLogger(__name__)

MIN_BCRYPT_COST = 10

# bcrypt only considers the first 72 bytes of input
MAX_PASSWORD_BYTES = 72


class BcryptPasswordHasher:
    """
    Implements PasswordHasher protocol via bcrypt.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, cost: int = 12) -> None:
        if cost < MIN_BCRYPT_COST:
            raise ValueError(f"bcrypt cost must be at least {MIN_BCRYPT_COST}, got {cost}")
        self._cost = cost
        self._dummy_hash: str | None = None

    @property
    def cost(self) -> int:
        return self._cost

    def hash(self, password: str) -> str:
        """Hash password with a fresh random salt."""
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=self._cost)).decode()

    def verify(self, password: str, stored_hash: str | None) -> bool:
        """
        Verify password against a stored bcrypt hash in constant time.

        Malformed, empty or None hashes fail closed (return False) instead
        of raising, so format errors are indistinguishable from a mismatch.
        """
        if not stored_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode(), stored_hash.encode())
        except ValueError:
            logger.warning("Stored password hash is malformed; verification failed closed")
            return False

    def verify_dummy(self, password: str) -> bool:
        """
        Run a full-cost verification against a throwaway hash.

        Used when no account exists so the response time matches a real
        password check. Always returns False.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self.hash(secrets.token_urlsafe(16))
        self.verify(password, self._dummy_hash)
        return False

    def create_activation_token(self) -> str:
        """Return an unguessable URL-safe token (256 bits of entropy)."""
        return secrets.token_urlsafe(32)
