"""Builders and stubs shared by receiver tests."""

import functools
import json
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List

import httpx

from src.receiver.github.client import GitHubClient

WEBHOOK_SECRET = "It's a Secret to Everybody"
APP_IDENTIFIER = "12345"
API_URL = "https://api.github.test"


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class RecordingTransport:
    """httpx transport stub that records requests and delegates responses."""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []
        self._responder = responder

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responder(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def client_factory_for(
    transport: httpx.AsyncBaseTransport,
) -> Callable[..., GitHubClient]:
    return functools.partial(GitHubClient, transport=transport)


def issue_payload(
    action: str = "opened",
    installation_id: Any = 42,
    **extra: Any,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "action": action,
        "issue": {
            "id": 1,
            "url": "https://api.github.com/repos/octocat/Hello-World/issues/1347",
            "number": "1347",
        },
        "repository": {
            "id": 1296269,
            "full_name": "octocat/Hello-World",
            "owner": {"login": "octocat", "id": 1},
        },
        "sender": {"login": "octocat", "id": 1},
    }
    if installation_id is not None:
        payload["installation"] = {"id": installation_id}
    payload.update(extra)
    return payload


def encode(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload).encode("utf-8")
