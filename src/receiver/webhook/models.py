"""GitHub webhook delivery and event models.

This module defines:
- WebhookRequest: the raw delivery (body bytes plus headers) as received
- SignatureHeader: the parsed ``X-Hub-Signature-256`` header value
- IssueEvent and UnknownEvent: the typed event variants
- parse_event: the closed mapping from event type to event model
- read_installation_id: the envelope read used to scope token exchange
- read_action: the envelope read used to pick a handler before parsing

The event type is carried by the ``X-GitHub-Event`` header, not by the
payload. Event models ignore unknown payload fields so new fields added by
GitHub never break parsing.

GitHub Webhook Payload Structure (issues event):
{
  "action": "opened",
  "issue": {"id": 1, "number": 1347},
  "repository": {"full_name": "octocat/Hello-World"},
  "installation": {"id": 42}
}
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.receiver.errors import MalformedPayloadError, StageResult

SIGNATURE_HEADER = "x-hub-signature-256"
EVENT_HEADER = "x-github-event"
DELIVERY_HEADER = "x-github-delivery"

DEFAULT_SIGNATURE_METHOD = "sha256"


@dataclass(frozen=True)
class WebhookRequest:
    """A webhook delivery as received from GitHub.

    Header names are folded to lowercase on construction, so lookups are
    case-insensitive. The body is kept byte-for-byte as delivered because
    the signature covers the exact bytes.

    Attributes:
        body: Raw request body.
        headers: Read-only mapping of lowercase header name to value.
    """

    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        folded = {name.lower(): value for name, value in self.headers.items()}
        object.__setattr__(self, "headers", MappingProxyType(folded))

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    @property
    def event_type(self) -> Optional[str]:
        return self.header(EVENT_HEADER)

    @property
    def delivery_id(self) -> Optional[str]:
        return self.header(DELIVERY_HEADER)


@dataclass(frozen=True)
class SignatureHeader:
    """Parsed ``<method>=<digest>`` signature header.

    Attributes:
        method: Algorithm tag, e.g. "sha256".
        digest: Hex digest as sent by GitHub.
    """

    method: str
    digest: str

    @classmethod
    def parse(cls, value: Optional[str]) -> "SignatureHeader":
        """Parse a signature header value.

        A value without ``=`` still parses: the method falls back to the
        default algorithm and the whole value becomes the digest, so a
        malformed header fails verification instead of failing here.
        A missing header parses as an empty digest.

        Args:
            value: The raw header value, or None if absent.

        Returns:
            The parsed SignatureHeader.
        """
        if not value:
            return cls(method=DEFAULT_SIGNATURE_METHOD, digest="")
        method, separator, digest = value.partition("=")
        if not separator:
            return cls(method=DEFAULT_SIGNATURE_METHOD, digest=value)
        return cls(method=method, digest=digest)


class _EventModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Installation(_EventModel):
    id: int


class Repository(_EventModel):
    full_name: str = Field(..., min_length=3)

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]

    @property
    def name(self) -> str:
        return self.full_name.split("/", 1)[-1]


class Issue(_EventModel):
    id: int
    # GitHub sends an integer; some fixtures carry it as a string.
    number: int = Field(..., gt=0)


class IssueEvent(_EventModel):
    """Payload of an ``issues`` webhook event.

    Attributes:
        action: What happened to the issue (opened, closed, labeled, ...).
        repository: Repository the issue belongs to.
        issue: The issue identifiers.
        installation: The App installation the delivery was sent for.
    """

    action: str
    repository: Repository
    issue: Issue
    installation: Optional[Installation] = None

    @property
    def issue_id(self) -> str:
        """Canonical issue identifier, "{owner}/{repo}#{number}"."""
        return f"{self.repository.full_name}#{self.issue.number}"


@dataclass(frozen=True)
class UnknownEvent:
    """An event type no route recognises. Ignored, never an error."""

    event_type: Optional[str]


EVENT_MODELS: Mapping[str, Type[BaseModel]] = MappingProxyType(
    {
        "issues": IssueEvent,
    }
)


def parse_event(
    event_type: Optional[str],
    payload: bytes,
    models: Mapping[str, Type[BaseModel]] = EVENT_MODELS,
) -> Union[BaseModel, UnknownEvent]:
    """Parse a verified payload into the event variant for its type.

    Args:
        event_type: Value of the ``X-GitHub-Event`` header.
        payload: The verified raw body.
        models: Mapping from event type to event model.

    Returns:
        The typed event, or UnknownEvent when the type has no model.

    Raises:
        MalformedPayloadError: If the payload does not match the model
            for a known event type.
    """
    model = models.get(event_type) if event_type else None
    if model is None:
        return UnknownEvent(event_type=event_type)

    try:
        return model.model_validate_json(payload)
    except ValidationError as e:
        raise MalformedPayloadError(
            f"Invalid {event_type!r} payload: {e.error_count()} validation errors"
        ) from e


class _DeliveryEnvelope(_EventModel):
    installation: Optional[Installation] = None


def read_installation_id(payload: bytes) -> StageResult[int]:
    """Read ``installation.id`` from a verified payload.

    Only the envelope is read; the payload is not parsed into an event.

    Args:
        payload: The verified raw body.

    Returns:
        StageResult holding the installation id, or MalformedPayloadError
        when the body is not JSON or the field is missing or not an integer.
    """
    try:
        envelope = _DeliveryEnvelope.model_validate_json(payload)
    except ValidationError:
        return StageResult.failure(
            MalformedPayloadError("Payload is not a valid delivery envelope")
        )

    if envelope.installation is None:
        return StageResult.failure(
            MalformedPayloadError("Payload has no installation.id")
        )
    return StageResult.success(envelope.installation.id)


class _ActionEnvelope(_EventModel):
    action: Optional[str] = None


def read_action(payload: bytes) -> StageResult[Optional[str]]:
    """Read the top-level ``action`` from a verified payload.

    Only the envelope is read, so a delivery whose action nobody handles
    is never held to the full event model.

    Args:
        payload: The verified raw body.

    Returns:
        StageResult holding the action (None when absent), or
        MalformedPayloadError when the body is not a JSON object.
    """
    try:
        envelope = _ActionEnvelope.model_validate_json(payload)
    except ValidationError:
        return StageResult.failure(
            MalformedPayloadError("Payload is not a valid delivery envelope")
        )
    return StageResult.success(envelope.action)
