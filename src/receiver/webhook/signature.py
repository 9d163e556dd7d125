"""Webhook signature verification.

GitHub signs every delivery with the webhook secret and sends the result in
the ``X-Hub-Signature-256`` header as ``sha256=<hex digest>``. The digest is
an HMAC over the raw body bytes, so verification must run before the body is
decoded or re-serialised.

See https://docs.github.com/en/webhooks/using-webhooks/validating-webhook-deliveries
"""

import hashlib
import hmac
import logging
from typing import Callable, Dict, Optional, Union

from src.receiver.errors import (
    SignatureMismatchError,
    StageResult,
    UnsupportedAlgorithmError,
)
from src.receiver.webhook.models import DEFAULT_SIGNATURE_METHOD, SignatureHeader

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHMS: Dict[str, Callable] = {
    "sha256": hashlib.sha256,
}


def _as_bytes(secret: Union[str, bytes]) -> bytes:
    if isinstance(secret, str):
        return secret.encode("utf-8")
    return secret


def compute_signature(
    secret: Union[str, bytes],
    payload: bytes,
    method: str = DEFAULT_SIGNATURE_METHOD,
) -> str:
    """Compute the signature header value GitHub would send for a payload.

    Args:
        secret: The shared webhook secret.
        payload: Raw body bytes.
        method: Algorithm tag.

    Returns:
        Header value in the form ``<method>=<lowercase hex digest>``.
    """
    digest = hmac.new(
        _as_bytes(secret), payload, SUPPORTED_ALGORITHMS[method]
    ).hexdigest()
    return f"{method}={digest}"


def verify_signature(
    secret: Union[str, bytes],
    payload: bytes,
    header_value: Optional[str],
    method: str = DEFAULT_SIGNATURE_METHOD,
) -> StageResult[None]:
    """Verify a payload against its signature header.

    Args:
        secret: The shared webhook secret.
        payload: Raw, unmodified body bytes.
        header_value: Value of the signature header, or None if absent.
        method: The single algorithm this receiver accepts.

    Returns:
        A successful StageResult, or one carrying UnsupportedAlgorithmError
        or SignatureMismatchError.
    """
    signature = SignatureHeader.parse(header_value)
    if signature.method != method or method not in SUPPORTED_ALGORITHMS:
        return StageResult.failure(UnsupportedAlgorithmError(signature.method))

    expected = compute_signature(secret, payload, method).partition("=")[2]

    # compare_digest rejects non-ASCII str, so compare the encoded forms.
    if not hmac.compare_digest(
        expected.encode("ascii"), signature.digest.encode("utf-8", "surrogatepass")
    ):
        return StageResult.failure(SignatureMismatchError())

    return StageResult.success()


class SignatureVerifier:
    """Verifies webhook deliveries with a pre-shared secret.

    The secret is configuration: it is supplied once at startup and only
    read afterwards, so a single verifier is safe to share between
    concurrent requests.

    Attributes:
        method: The accepted signature algorithm.
    """

    def __init__(
        self,
        secret: Union[str, bytes],
        method: str = DEFAULT_SIGNATURE_METHOD,
    ):
        if method not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported signature algorithm: {method}")
        self._secret = _as_bytes(secret)
        self.method = method

    def __repr__(self) -> str:
        return f"SignatureVerifier(method={self.method!r})"

    def verify(
        self, payload: bytes, header_value: Optional[str]
    ) -> StageResult[None]:
        """Verify ``payload`` against ``header_value``.

        Args:
            payload: Raw, unmodified body bytes.
            header_value: Value of the signature header, or None if absent.

        Returns:
            StageResult describing the outcome.
        """
        result = verify_signature(self._secret, payload, header_value, self.method)
        if not result.ok:
            logger.debug(
                "Webhook signature rejected",
                extra={
                    "reason": type(result.error).__name__,
                    "payload_length": len(payload),
                },
            )
        return result
