"""App assertion signing.

A GitHub App authenticates as itself with a short-lived JWT signed by the
App's private key. The assertion carries only the issuer (the App
identifier) and its validity window; it is created fresh for every delivery,
used once to request an installation token, and then discarded.

JWT claims:
- iat: issued-at, the signing time in epoch seconds
- exp: expiry, exactly ASSERTION_LIFETIME after iat
- iss: the App identifier
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional, Union

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from src.receiver.errors import SigningKeyError

logger = logging.getLogger(__name__)

ASSERTION_ALGORITHM = "RS256"
ASSERTION_LIFETIME = timedelta(minutes=10)

PrivateKeyInput = Union[str, bytes, rsa.RSAPrivateKey]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_pem(pem: str) -> str:
    """Restore newlines in a PEM stored with literal ``\\n`` escapes.

    Environment variables commonly carry the key on one line.
    """
    return pem.replace("\\n", "\n").strip()


def load_private_key(key: PrivateKeyInput) -> rsa.RSAPrivateKey:
    """Load the App private key for RS256 signing.

    Args:
        key: PEM text or bytes (PKCS#1 or PKCS#8), or an already loaded key.

    Returns:
        The RSA private key.

    Raises:
        SigningKeyError: If the key cannot be parsed or is not an RSA key.
    """
    if isinstance(key, rsa.RSAPrivateKey):
        return key

    if isinstance(key, str):
        key = normalize_pem(key).encode("utf-8")

    try:
        loaded = serialization.load_pem_private_key(key, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise SigningKeyError(
            f"App private key could not be loaded: {type(e).__name__}"
        ) from e

    if not isinstance(loaded, rsa.RSAPrivateKey):
        raise SigningKeyError(
            f"{ASSERTION_ALGORITHM} requires an RSA private key, "
            f"got {type(loaded).__name__}"
        )
    return loaded


@dataclass(frozen=True)
class AssertionClaims:
    """Validity window and issuer of an App assertion.

    Attributes:
        issued_at: Signing time.
        expires_at: End of the validity window (exclusive).
        issuer: The App identifier.
    """

    issued_at: datetime
    expires_at: datetime
    issuer: str

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "AssertionClaims":
        return cls(
            issued_at=datetime.fromtimestamp(int(claims["iat"]), tz=timezone.utc),
            expires_at=datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc),
            issuer=str(claims["iss"]),
        )

    def is_valid_at(self, moment: datetime) -> bool:
        return self.issued_at <= moment < self.expires_at


def read_assertion_claims(assertion: str) -> AssertionClaims:
    """Read the claims of an assertion this process signed.

    The signature is not checked: the assertion never left this process.

    Raises:
        jwt.InvalidTokenError: If the token cannot be decoded.
        KeyError: If a required claim is missing.
    """
    claims = jwt.decode(assertion, options={"verify_signature": False})
    return AssertionClaims.from_claims(claims)


def sign_assertion(
    issuer: str,
    now: datetime,
    private_key: PrivateKeyInput,
) -> str:
    """Sign an App assertion valid from ``now`` for ASSERTION_LIFETIME.

    Args:
        issuer: The App identifier.
        now: Issue time; sampled once by the caller.
        private_key: RSA private key or its PEM encoding.

    Returns:
        The compact RS256 JWT.

    Raises:
        SigningKeyError: If the key cannot be used with RS256.
    """
    key = load_private_key(private_key)
    issued_at = int(now.timestamp())
    claims = {
        "iat": issued_at,
        "exp": issued_at + int(ASSERTION_LIFETIME.total_seconds()),
        "iss": issuer,
    }
    return jwt.encode(claims, key, algorithm=ASSERTION_ALGORITHM)


class AssertionSigner:
    """Signs App assertions with the App's private key.

    The key is loaded and checked once at construction, so a bad key fails
    at startup rather than on the first delivery. After construction the
    signer only reads its configuration and is safe to share between
    concurrent requests.

    Attributes:
        issuer: The App identifier placed in ``iss``.
    """

    def __init__(
        self,
        issuer: str,
        private_key: PrivateKeyInput,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the signer.

        Args:
            issuer: The App identifier.
            private_key: RSA private key or its PEM encoding.
            clock: Source of the current time.

        Raises:
            SigningKeyError: If the key cannot be used with RS256.
        """
        if not issuer or not str(issuer).strip():
            raise SigningKeyError("App identifier cannot be empty")
        self.issuer = str(issuer)
        self._private_key = load_private_key(private_key)
        self._clock = clock

    def __repr__(self) -> str:
        return f"AssertionSigner(issuer={self.issuer!r})"

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self._private_key.public_key()

    def sign(self, now: Optional[datetime] = None) -> str:
        """Sign a fresh assertion.

        Args:
            now: Issue time. Defaults to the signer's clock, read once.

        Returns:
            The compact RS256 JWT.
        """
        if now is None:
            now = self._clock()
        assertion = sign_assertion(self.issuer, now, self._private_key)
        logger.debug(
            "Signed app assertion",
            extra={"issuer": self.issuer, "issued_at": int(now.timestamp())},
        )
        return assertion
