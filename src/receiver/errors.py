"""Error taxonomy and stage results for the receiver pipeline.

Each pipeline stage returns a StageResult rather than raising, so the
orchestrator can inspect the outcome and halt on the first failure. The
exception classes below are carried as values inside failed results; only
SigningKeyError is raised, because an unusable private key is a startup
configuration error rather than a per-request one.

Unknown event types and unknown actions are not errors and have no class
here: the dispatcher acknowledges and ignores them.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ReceiverError(Exception):
    """Base class for all receiver pipeline errors.

    Attributes:
        message: Human-readable error description. Never contains secrets,
                 digests or tokens.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class SignatureError(ReceiverError):
    """Raised when a webhook signature cannot be verified."""


class UnsupportedAlgorithmError(SignatureError):
    """Raised when the signature header names an algorithm we do not accept.

    Attributes:
        method: The algorithm tag from the signature header.
    """

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Unsupported signature algorithm: {method!r}")


class SignatureMismatchError(SignatureError):
    """Raised when the computed digest does not match the sender's digest."""

    def __init__(self) -> None:
        super().__init__("Webhook signature does not match payload")


class MalformedPayloadError(ReceiverError):
    """Raised when a verified payload lacks data the pipeline requires."""


class SigningKeyError(ReceiverError):
    """Raised when the App private key cannot be used for signing."""


class ExchangeError(ReceiverError):
    """Raised when an installation token cannot be obtained.

    Attributes:
        installation_id: The installation the token was requested for.
        status_code: HTTP status from GitHub, if a response was received.
    """

    def __init__(
        self,
        message: str,
        installation_id: Optional[int] = None,
        status_code: Optional[int] = None,
    ):
        self.installation_id = installation_id
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Outcome of a single pipeline stage.

    Exactly one of ``value`` and ``error`` is meaningful: a result with an
    error is a failure regardless of ``value``.

    Attributes:
        value: The stage output on success.
        error: The failure cause, or None on success.
    """

    value: Optional[T] = None
    error: Optional[ReceiverError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ReceiverError) -> "StageResult[T]":
        return cls(error=error)
