"""GitHub API client for App and installation interactions.

This module provides a wrapper around the GitHub API for:
- Exchanging an App assertion for an installation access token
- Labeling issues with an installation-scoped token
"""

from src.receiver.github.client import (
    GitHubAPIError,
    GitHubClient,
    RateLimitError,
)

__all__ = [
    "GitHubAPIError",
    "GitHubClient",
    "RateLimitError",
]
