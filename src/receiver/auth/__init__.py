"""GitHub App authentication.

App auth flow:
1. Sign a JWT assertion with the App's private key
2. Exchange the assertion for a short-lived installation access token
3. Use the installation token for API calls scoped to that installation
"""

from .assertion import (
    ASSERTION_LIFETIME,
    AssertionClaims,
    AssertionSigner,
    load_private_key,
    sign_assertion,
)
from .exchange import InstallationToken, TokenExchanger

__all__ = [
    "ASSERTION_LIFETIME",
    "AssertionClaims",
    "AssertionSigner",
    "InstallationToken",
    "TokenExchanger",
    "load_private_key",
    "sign_assertion",
]
