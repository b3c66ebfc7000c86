"""Password hashing and session token capabilities.

Pipeline:
- PasswordHasher: bcrypt hashing and verification
- SessionTokenIssuer: signed JWT session tokens carrying the account's
  session token version, so bumping the version revokes every token
- DUMMY_HASH: Timing-safe constant for account enumeration defense
"""

import logging
from datetime import UTC, datetime, timedelta

import bcrypt
import jwt

from account_service.core.errors import InvalidCredentialsError

logger = logging.getLogger(__name__)

# Default session token expiration: 1 hour
_DEFAULT_EXPIRATION = timedelta(hours=1)

_AUDIENCE = "account-service"
_ALGORITHM = "HS256"

# Pre-computed bcrypt hash for timing-safe comparison on account-not-found.
# Security: prevents account enumeration via response time differences.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"


class PasswordHasher:
    """bcrypt password hashing with a configurable cost factor."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """Hash a plaintext password.

        Args:
            plaintext: Password as entered by the user.

        Returns:
            bcrypt hash as a string.
        """
        hashed = bcrypt.hashpw(plaintext.encode(), bcrypt.gensalt(rounds=self.rounds))
        return hashed.decode()

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Check a plaintext password against a stored hash."""
        try:
            return bcrypt.checkpw(plaintext.encode(), hashed.encode())
        except ValueError:
            # Stored value is not a bcrypt hash
            logger.warning("Stored password hash is malformed")
            return False

    def verify_dummy(self, plaintext: str) -> None:
        """Run a comparison that always fails, for unknown accounts.

        Security: keeps the response time of a miss equal to a wrong password.
        """
        bcrypt.checkpw(plaintext.encode(), DUMMY_HASH)


class SessionTokenIssuer:
    """Mints and verifies HS256 session tokens.

    The ``ver`` claim holds the account's session token version at minting
    time. Verification only checks the signature and standard claims; the
    caller compares ``ver`` against the stored version.
    """

    def __init__(
        self,
        secret: str,
        *,
        issuer: str = "account-service",
        expires_delta: timedelta | None = None,
    ) -> None:
        if not secret:
            raise ValueError("Session token secret must not be empty")
        self._secret = secret
        self.issuer = issuer
        self.expires_delta = expires_delta or _DEFAULT_EXPIRATION

    def mint(self, account_id: int, version: int) -> str:
        """Create a signed session token.

        Args:
            account_id: Account the token authenticates.
            version: Current session token version of the account.

        Returns:
            Encoded JWT string.
        """
        now = datetime.now(UTC)
        payload = {
            "sub": str(account_id),
            "ver": version,
            "aud": _AUDIENCE,
            "iss": self.issuer,
            "exp": now + self.expires_delta,
            "iat": now,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> tuple[int, int]:
        """Decode and validate a session token.

        Args:
            token: Encoded JWT string.

        Returns:
            Tuple of (account_id, version).

        Raises:
            InvalidCredentialsError: If the token is malformed, tampered with,
                expired, or issued for another audience/issuer.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=_AUDIENCE,
                issuer=self.issuer,
                options={"require": ["sub", "ver", "exp", "iat"]},
            )
            account_id = int(payload["sub"])
            version = int(payload["ver"])
        except (jwt.InvalidTokenError, KeyError, ValueError, TypeError) as exc:
            raise InvalidCredentialsError() from exc
        return account_id, version
