"""GitHub API client for App and installation interactions.

This module provides an async wrapper around the GitHub REST API for:
- Exchanging an App assertion for an installation access token
- Adding labels to issues with an installation token

The client authenticates with a single bearer credential: either the App's
signed assertion (JWT) or an installation access token. A client is bound to
one credential for its whole life and is created per request, so a token is
never shared between deliveries.

Requests are made exactly once. Webhook redelivery is GitHub's
responsibility, so this client surfaces failures instead of retrying them.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx


logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded."""


class GitHubClient:
    """Async GitHub API client bound to one bearer credential.

    Supports both github.com and GitHub Enterprise Server through
    ``base_url``.

    Attributes:
        base_url: Base URL for GitHub API (default: https://api.github.com).
        timeout: Request timeout in seconds.

    Example:
        >>> async with GitHubClient(token=installation_token) as client:
        ...     await client.add_labels("octocat/Hello-World", 1347, ["triage"])
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: Bearer credential (App JWT or installation token).
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used to stub the API.
        """
        self._token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def __repr__(self) -> str:
        return f"GitHubClient(base_url={self.base_url!r})"

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary.

        Returns:
            The httpx AsyncClient instance.
        """
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        """Build default headers for GitHub API requests.

        Returns:
            Dictionary of HTTP headers.
        """
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "GitHubAppReceiver/1.0",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: Any,
        exc_val: Any,
        exc_tb: Any,
    ) -> None:
        """Async context manager exit - close the client."""
        await self.close()

    def _parse_rate_limit_headers(
        self,
        headers: httpx.Headers,
    ) -> Dict[str, Optional[int]]:
        """Parse rate limit information from response headers.

        Args:
            headers: Response headers from GitHub API.

        Returns:
            Dictionary with rate limit information:
            - limit: Maximum requests allowed
            - remaining: Requests remaining in current window
            - reset: Unix timestamp when limit resets
            - used: Requests used in current window
        """
        return {
            "limit": self._parse_int_header(headers, "x-ratelimit-limit"),
            "remaining": self._parse_int_header(headers, "x-ratelimit-remaining"),
            "reset": self._parse_int_header(headers, "x-ratelimit-reset"),
            "used": self._parse_int_header(headers, "x-ratelimit-used"),
        }

    def _parse_int_header(
        self,
        headers: httpx.Headers,
        name: str,
    ) -> Optional[int]:
        """Parse an integer header value.

        Args:
            headers: Response headers.
            name: Header name to parse.

        Returns:
            Integer value or None if not present/invalid.
        """
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    def _rate_limit_error(self, response: httpx.Response) -> RateLimitError:
        """Build the error for a rate-limited response.

        Args:
            response: The rate-limited response from GitHub.

        Returns:
            RateLimitError carrying the response status.
        """
        rate_limit = self._parse_rate_limit_headers(response.headers)

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={
                "limit": rate_limit.get("limit"),
                "remaining": rate_limit.get("remaining"),
                "reset": rate_limit.get("reset"),
                "used": rate_limit.get("used"),
                "retry_after": self._parse_int_header(response.headers, "retry-after"),
            },
        )

        return RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            request_url=str(response.url),
        )

    def _is_rate_limited(self, response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        if response.status_code == 403:
            remaining = self._parse_int_header(
                response.headers, "x-ratelimit-remaining"
            )
            return remaining == 0
        return False

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make a single HTTP request.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, PATCH).
            path: API path (e.g., /repos/owner/repo/issues/1/labels).
            json_data: Optional JSON body for the request.

        Returns:
            The HTTP response from GitHub.

        Raises:
            RateLimitError: If rate limit is exceeded.
            GitHubAPIError: On any other non-2xx status or transport failure.
        """
        try:
            response = await self.client.request(
                method=method,
                url=path,
                json=json_data,
            )
        except httpx.TimeoutException as e:
            logger.warning(
                "GitHub API request timed out",
                extra={"path": path, "method": method, "timeout": self.timeout},
            )
            raise GitHubAPIError(
                message=f"Request timed out after {self.timeout}s",
                request_url=f"{self.base_url}{path}",
            ) from e
        except httpx.RequestError as e:
            logger.warning(
                "GitHub API request failed",
                extra={"path": path, "method": method, "error": type(e).__name__},
            )
            raise GitHubAPIError(
                message=f"Request failed: {type(e).__name__}",
                request_url=f"{self.base_url}{path}",
            ) from e

        if self._is_rate_limited(response):
            raise self._rate_limit_error(response)

        if response.status_code >= 400:
            error_body = response.text
            logger.error(
                "GitHub API error",
                extra={
                    "status_code": response.status_code,
                    "path": path,
                    "method": method,
                    "response_body": error_body[:500],
                },
            )
            raise GitHubAPIError(
                message=f"GitHub API error: {response.status_code}",
                status_code=response.status_code,
                response_body=error_body,
                request_url=str(response.url),
            )

        return response

    async def create_installation_token(
        self,
        installation_id: int,
    ) -> Dict[str, Any]:
        """Create an access token for an App installation.

        The client must be authenticated with the App's signed assertion,
        not with an installation token.

        Args:
            installation_id: The installation to scope the token to.

        Returns:
            The token data from GitHub API (``token``, ``expires_at``, ...).

        Raises:
            GitHubAPIError: If the request fails or the body is not JSON.
        """
        path = f"/app/installations/{installation_id}/access_tokens"

        logger.info(
            "Requesting installation access token",
            extra={"installation_id": installation_id},
        )

        response = await self._request(method="POST", path=path)

        try:
            result = response.json()
        except ValueError as e:
            raise GitHubAPIError(
                message="Installation token response is not JSON",
                status_code=response.status_code,
                request_url=str(response.url),
            ) from e

        logger.info(
            "Installation access token issued",
            extra={
                "installation_id": installation_id,
                "expires_at": result.get("expires_at") if isinstance(result, dict) else None,
            },
        )

        return result

    async def add_labels(
        self,
        repository: str,
        issue_number: int,
        labels: List[str],
    ) -> List[Dict[str, Any]]:
        """Add labels to an issue.

        Args:
            repository: Full repository name, "{owner}/{repo}".
            issue_number: Issue number to label.
            labels: Label names to add.

        Returns:
            List of all labels on the issue after adding.

        Raises:
            GitHubAPIError: If the request fails.
        """
        path = f"/repos/{repository}/issues/{issue_number}/labels"

        logger.info(
            "Adding labels to issue",
            extra={
                "repository": repository,
                "issue_number": issue_number,
                "labels": labels,
            },
        )

        response = await self._request(
            method="POST",
            path=path,
            json_data={"labels": labels},
        )

        result = response.json()
        logger.info(
            "Labels added successfully",
            extra={
                "repository": repository,
                "issue_number": issue_number,
                "labels": labels,
                "total_labels": len(result),
            },
        )

        return result
