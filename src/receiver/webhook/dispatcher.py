"""Routing of authenticated webhook deliveries to business handlers.

Dispatch is a closed mapping from event type (the ``X-GitHub-Event``
header) to an EventRoute, and within a route from the payload's ``action``
to a handler. Anything not in the mapping is acknowledged with 200 and
ignored: GitHub redelivers on non-2xx responses, and an event we do not
handle is not a failure. The payload is held to the full event model only
once a handler has been selected for its action.

Status codes:
- 200: handled, or ignored (unknown event type or action)
- 500: no authenticated context, invalid payload for a handled action,
       or the handler failed. Failures are not retried here; redelivery
       is GitHub's responsibility.
"""

import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Awaitable, Callable, Mapping, Optional

from src.receiver.errors import MalformedPayloadError
from src.receiver.github.client import GitHubClient
from src.receiver.webhook.interceptor import AuthenticatedContext
from src.receiver.webhook.models import (
    UnknownEvent,
    WebhookRequest,
    parse_event,
    read_action,
)

logger = logging.getLogger(__name__)

EventHandler = Callable[[GitHubClient, Any], Awaitable[None]]
EventParser = Callable[[Optional[str], bytes], Any]


@dataclass(frozen=True)
class EventRoute:
    """Handlers for one event type, keyed by payload action.

    Attributes:
        actions: Mapping of action name to handler. Actions not listed
                 are acknowledged and ignored.
    """

    actions: Mapping[str, EventHandler] = field(default_factory=dict)

    def handler_for(self, action: Optional[str]) -> Optional[EventHandler]:
        if action is None:
            return None
        return self.actions.get(action)


class EventDispatcher:
    """Parses authenticated deliveries and invokes the matching handler.

    Attributes:
        routes: Mapping of event type to EventRoute.
    """

    def __init__(
        self,
        routes: Mapping[str, EventRoute],
        parser: EventParser = parse_event,
    ):
        self.routes = dict(routes)
        self._parser = parser

    async def handle(
        self,
        request: WebhookRequest,
        context: Optional[AuthenticatedContext],
    ) -> HTTPStatus:
        """Dispatch one authenticated delivery.

        Args:
            request: The delivery as read by the interceptor.
            context: The installation-scoped context from the interceptor.

        Returns:
            The HTTP status to answer the delivery with.
        """
        event_type = request.event_type

        if context is None:
            logger.error(
                "No authenticated context for webhook delivery",
                extra={"event_type": event_type, "delivery_id": request.delivery_id},
            )
            return HTTPStatus.INTERNAL_SERVER_ERROR

        logger.info(
            "Received webhook event",
            extra={"event_type": event_type, "delivery_id": request.delivery_id},
        )

        route = self.routes.get(event_type) if event_type else None
        if route is None:
            logger.debug("Ignoring unhandled event type: %s", event_type)
            return HTTPStatus.OK

        envelope = read_action(request.body)
        if not envelope.ok:
            logger.error(
                "Invalid webhook payload",
                extra={"event_type": event_type, "error": envelope.error.message},
            )
            return HTTPStatus.INTERNAL_SERVER_ERROR

        action = envelope.value
        handler = route.handler_for(action)
        if handler is None:
            logger.debug(
                "Ignoring unhandled action: %s.%s",
                event_type,
                action,
            )
            return HTTPStatus.OK

        try:
            event = self._parser(event_type, request.body)
        except MalformedPayloadError as e:
            logger.error(
                "Invalid webhook payload",
                extra={"event_type": event_type, "error": e.message},
            )
            return HTTPStatus.INTERNAL_SERVER_ERROR

        if isinstance(event, UnknownEvent):
            logger.debug("Ignoring unhandled event type: %s", event_type)
            return HTTPStatus.OK

        logger.info(
            "Dispatching webhook event",
            extra={
                "event_type": event_type,
                "action": action,
                "installation_id": context.installation_id,
            },
        )

        try:
            await handler(context.client, event)
        except Exception:
            logger.exception(
                "Webhook handler failed",
                extra={"event_type": event_type, "action": action},
            )
            return HTTPStatus.INTERNAL_SERVER_ERROR

        return HTTPStatus.OK
