"""Business handlers for webhook events."""

import logging

from src.receiver.github.client import GitHubClient
from src.receiver.webhook.models import IssueEvent

logger = logging.getLogger(__name__)

DEFAULT_ISSUE_LABEL = "needs-response"


class IssueOpenedHandler:
    """Labels newly opened issues so they show up in triage.

    Attributes:
        label: Label added to every opened issue.
    """

    def __init__(self, label: str = DEFAULT_ISSUE_LABEL):
        if not label or not label.strip():
            raise ValueError("label cannot be empty")
        self.label = label.strip()

    async def __call__(self, client: GitHubClient, event: IssueEvent) -> None:
        """Add the triage label to the issue the event describes.

        Args:
            client: Client authenticated for the event's installation.
            event: The ``issues.opened`` event.

        Raises:
            GitHubAPIError: If GitHub rejects the request.
        """
        logger.info(
            "Labeling opened issue",
            extra={"issue_id": event.issue_id, "label": self.label},
        )
        await client.add_labels(
            event.repository.full_name,
            event.issue.number,
            [self.label],
        )
