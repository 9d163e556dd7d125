"""Installation access token exchange.

The App's signed assertion only authenticates the App itself. To act on an
installation's repositories the receiver exchanges the assertion for an
installation access token:

    POST /app/installations/{installation_id}/access_tokens
    Authorization: Bearer <assertion>

    201 Created
    {"token": "ghs_...", "expires_at": "2016-07-11T22:14:10Z", ...}

The token belongs to the request that obtained it. It is never cached,
persisted, or handed to another delivery.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

import jwt

from src.receiver.auth.assertion import read_assertion_claims, utcnow
from src.receiver.errors import ExchangeError, StageResult
from src.receiver.github.client import GitHubAPIError, GitHubClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., GitHubClient]


@dataclass(frozen=True)
class InstallationToken:
    """An installation-scoped access token.

    Attributes:
        token: The opaque bearer token. Excluded from repr.
        installation_id: The installation the token is scoped to.
        expires_at: Platform-defined expiry, if GitHub reported one.
    """

    token: str = field(repr=False)
    installation_id: int
    expires_at: Optional[datetime] = None


def _parse_expiry(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class TokenExchanger:
    """Exchanges App assertions for installation access tokens.

    A new GitHub client is created for every exchange and closed before the
    method returns, so the assertion never outlives the call.

    Attributes:
        base_url: Base URL for GitHub API.
        timeout: Upper bound in seconds for the whole exchange.
    """

    def __init__(
        self,
        base_url: str = "https://api.github.com",
        timeout: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
        client_factory: ClientFactory = GitHubClient,
    ):
        """Initialize the exchanger.

        Args:
            base_url: Base URL for GitHub API.
            timeout: Upper bound in seconds for the whole exchange.
            clock: Source of the current time, used to check the
                   assertion's validity window.
            client_factory: Builds the GitHub client; called with
                            ``token``, ``base_url`` and ``timeout``.
        """
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.base_url = base_url
        self.timeout = timeout
        self._clock = clock
        self._client_factory = client_factory

    def _check_assertion(self, assertion: str) -> Optional[ExchangeError]:
        try:
            claims = read_assertion_claims(assertion)
        except (jwt.InvalidTokenError, KeyError, TypeError, ValueError):
            return ExchangeError("App assertion is malformed")

        if not claims.is_valid_at(self._clock()):
            return ExchangeError("App assertion is outside its validity window")
        return None

    async def exchange(
        self,
        assertion: str,
        installation_id: int,
    ) -> StageResult[InstallationToken]:
        """Obtain an installation token using an App assertion.

        Args:
            assertion: The signed App assertion.
            installation_id: The installation to scope the token to.

        Returns:
            StageResult holding the InstallationToken, or an ExchangeError
            for an expired assertion, a non-2xx response, a transport
            failure, a timeout, or a response without a token.
        """
        error = self._check_assertion(assertion)
        if error is not None:
            error.installation_id = installation_id
            logger.warning(
                "Refusing to exchange app assertion",
                extra={"installation_id": installation_id, "reason": error.message},
            )
            return StageResult.failure(error)

        client = self._client_factory(
            token=assertion,
            base_url=self.base_url,
            timeout=self.timeout,
        )
        try:
            async with client:
                data = await asyncio.wait_for(
                    client.create_installation_token(installation_id),
                    timeout=self.timeout,
                )
        except asyncio.TimeoutError:
            return self._failure(
                f"Token exchange timed out after {self.timeout}s", installation_id
            )
        except GitHubAPIError as e:
            return self._failure(
                f"Token exchange failed: {e.message}",
                installation_id,
                status_code=e.status_code,
            )

        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            return self._failure(
                "Token exchange response has no token", installation_id
            )

        logger.info(
            "Obtained installation token",
            extra={"installation_id": installation_id},
        )
        return StageResult.success(
            InstallationToken(
                token=token,
                installation_id=installation_id,
                expires_at=_parse_expiry(data.get("expires_at")),
            )
        )

    def _failure(
        self,
        message: str,
        installation_id: int,
        status_code: Optional[int] = None,
    ) -> StageResult[InstallationToken]:
        logger.warning(
            "Installation token exchange failed",
            extra={
                "installation_id": installation_id,
                "status_code": status_code,
                "reason": message,
            },
        )
        return StageResult.failure(
            ExchangeError(
                message,
                installation_id=installation_id,
                status_code=status_code,
            )
        )
