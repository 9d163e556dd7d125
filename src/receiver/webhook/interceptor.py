"""Authentication pipeline run before any webhook handler.

For every delivery to the webhook path the interceptor runs, in order:

    RECEIVED → BODY_READ → SIGNATURE_VERIFIED → ASSERTION_ISSUED
             → TOKEN_EXCHANGED → AUTHENTICATED

Any failing stage moves the delivery to REJECTED and nothing further runs;
the caller answers 401 and the delivery never reaches the dispatcher.
Requests to any other path end in PASSED_THROUGH with their body unread.

Each stage returns a StageResult; the orchestrator inspects it and halts on
the first failure. Unexpected exceptions are also folded into REJECTED at
this boundary so that no internal detail (key errors, network errors) leaks
to the sender. Cancellation is not caught: a delivery whose client went away
simply stops, and since the AuthenticatedContext is only built after the
exchange completes, no partial state is left behind.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Mapping, Optional

from src.receiver.auth.assertion import AssertionSigner
from src.receiver.auth.exchange import InstallationToken, TokenExchanger
from src.receiver.errors import ReceiverError
from src.receiver.github.client import GitHubClient
from src.receiver.webhook.models import (
    SIGNATURE_HEADER,
    WebhookRequest,
    read_installation_id,
)
from src.receiver.webhook.signature import SignatureVerifier

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/event_handler"

BodyReader = Callable[[], Awaitable[bytes]]
ClientFactory = Callable[..., GitHubClient]


class InterceptorState(str, Enum):
    """Stages a delivery passes through in the interceptor.

    Attributes:
        RECEIVED: Request accepted by the HTTP layer.
        BODY_READ: Raw body read, exactly once.
        SIGNATURE_VERIFIED: Body matches the signature header.
        ASSERTION_ISSUED: App assertion signed for this delivery.
        TOKEN_EXCHANGED: Installation token obtained.
        AUTHENTICATED: Context attached; dispatch may run.
        REJECTED: A stage failed; the sender gets 401.
        PASSED_THROUGH: Not the webhook path; left untouched.
    """

    RECEIVED = "received"
    BODY_READ = "body_read"
    SIGNATURE_VERIFIED = "signature_verified"
    ASSERTION_ISSUED = "assertion_issued"
    TOKEN_EXCHANGED = "token_exchanged"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"
    PASSED_THROUGH = "passed_through"


class AuthenticatedContext:
    """Installation-scoped API access for a single delivery.

    Created by the interceptor once the token exchange succeeds and passed
    by parameter to the dispatcher. The GitHub client is opened on first
    use and closed when the context exits, so neither the token nor the
    client outlives the request.

    Attributes:
        token: The installation token this context is bound to.
    """

    def __init__(
        self,
        token: InstallationToken,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        client_factory: ClientFactory = GitHubClient,
    ):
        self.token = token
        self._base_url = base_url
        self._timeout = timeout
        self._client_factory = client_factory
        self._client: Optional[GitHubClient] = None

    def __repr__(self) -> str:
        return f"AuthenticatedContext(installation_id={self.installation_id})"

    @property
    def installation_id(self) -> int:
        return self.token.installation_id

    @property
    def client(self) -> GitHubClient:
        """GitHub client authenticated with the installation token."""
        if self._client is None:
            self._client = self._client_factory(
                token=self.token.token,
                base_url=self._base_url,
                timeout=self._timeout,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> "AuthenticatedContext":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


@dataclass(frozen=True)
class Interception:
    """Outcome of running the interceptor on one request.

    Attributes:
        state: Final state reached.
        request: The delivery as read, when the body was read.
        context: Installation-scoped context, only when AUTHENTICATED.
        error: The failure cause, only when REJECTED.
    """

    state: InterceptorState
    request: Optional[WebhookRequest] = None
    context: Optional[AuthenticatedContext] = None
    error: Optional[Exception] = None

    @property
    def rejected(self) -> bool:
        return self.state is InterceptorState.REJECTED

    @property
    def authenticated(self) -> bool:
        return self.state is InterceptorState.AUTHENTICATED


class EventInterceptor:
    """Authenticates webhook deliveries before dispatch.

    All collaborators are configuration supplied at startup; the
    interceptor holds no per-request state, so one instance serves
    concurrent deliveries.
    """

    def __init__(
        self,
        verifier: SignatureVerifier,
        signer: AssertionSigner,
        exchanger: TokenExchanger,
        webhook_path: str = WEBHOOK_PATH,
        api_base_url: str = "https://api.github.com",
        api_timeout: float = 30.0,
        client_factory: ClientFactory = GitHubClient,
    ):
        self.verifier = verifier
        self.signer = signer
        self.exchanger = exchanger
        self.webhook_path = webhook_path
        self._api_base_url = api_base_url
        self._api_timeout = api_timeout
        self._client_factory = client_factory

    def engages(self, path: str) -> bool:
        return path == self.webhook_path

    async def process(
        self,
        path: str,
        headers: Mapping[str, str],
        read_body: BodyReader,
    ) -> Interception:
        """Run the authentication pipeline for one request.

        Args:
            path: Request path.
            headers: Request headers.
            read_body: Coroutine function returning the raw body. Called at
                       most once.

        Returns:
            The Interception describing the final state.
        """
        if not self.engages(path):
            return Interception(state=InterceptorState.PASSED_THROUGH)

        state = InterceptorState.RECEIVED
        request: Optional[WebhookRequest] = None
        try:
            request = WebhookRequest(body=await read_body(), headers=headers)
            state = InterceptorState.BODY_READ
            return await self._authenticate(request)
        except ReceiverError as e:
            return self._reject(state, e, request)
        except Exception as e:
            logger.exception(
                "Unexpected error authenticating webhook delivery",
                extra={"stage": state.value},
            )
            return self._reject(state, e, request)

    async def _authenticate(self, request: WebhookRequest) -> Interception:
        state = InterceptorState.BODY_READ

        verified = self.verifier.verify(request.body, request.header(SIGNATURE_HEADER))
        if not verified.ok:
            return self._reject(state, verified.error, request)
        state = InterceptorState.SIGNATURE_VERIFIED

        installation = read_installation_id(request.body)
        if not installation.ok:
            return self._reject(state, installation.error, request)

        assertion = self.signer.sign()
        state = InterceptorState.ASSERTION_ISSUED

        exchanged = await self.exchanger.exchange(assertion, installation.value)
        if not exchanged.ok:
            return self._reject(state, exchanged.error, request)
        state = InterceptorState.TOKEN_EXCHANGED

        context = AuthenticatedContext(
            token=exchanged.value,
            base_url=self._api_base_url,
            timeout=self._api_timeout,
            client_factory=self._client_factory,
        )
        logger.info(
            "Webhook delivery authenticated",
            extra={
                "delivery_id": request.delivery_id,
                "event_type": request.event_type,
                "installation_id": context.installation_id,
            },
        )
        return Interception(
            state=InterceptorState.AUTHENTICATED,
            request=request,
            context=context,
        )

    def _reject(
        self,
        state: InterceptorState,
        error: Optional[Exception],
        request: Optional[WebhookRequest],
    ) -> Interception:
        logger.warning(
            "Webhook delivery rejected",
            extra={
                "stage": state.value,
                "reason": type(error).__name__,
                "delivery_id": request.delivery_id if request else None,
            },
        )
        return Interception(
            state=InterceptorState.REJECTED,
            request=request,
            error=error,
        )
