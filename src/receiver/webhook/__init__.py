"""GitHub webhook handling for the App receiver.

Deliveries are authenticated by the EventInterceptor (signature check and
installation token exchange) and then routed by the EventDispatcher. Only
``issues.opened`` triggers business logic; every other event is
acknowledged and ignored.
"""

from .dispatcher import EventDispatcher, EventRoute
from .handlers import IssueOpenedHandler
from .interceptor import (
    AuthenticatedContext,
    EventInterceptor,
    Interception,
    InterceptorState,
)
from .models import IssueEvent, UnknownEvent, WebhookRequest, parse_event
from .signature import SignatureVerifier, compute_signature, verify_signature

__all__ = [
    "AuthenticatedContext",
    "EventDispatcher",
    "EventInterceptor",
    "EventRoute",
    "Interception",
    "InterceptorState",
    "IssueEvent",
    "IssueOpenedHandler",
    "SignatureVerifier",
    "UnknownEvent",
    "WebhookRequest",
    "compute_signature",
    "parse_event",
    "verify_signature",
]
