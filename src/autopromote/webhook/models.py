"""GitHub webhook event models.

This module defines the data model for GitHub ``push`` webhook deliveries,
the only event kind that can trigger the promotion workflow.

The models use Pydantic for validation, consistent with the service's
configuration approach in config.py.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

BRANCH_REF_PREFIX = "refs/heads/"


class PushEvent(BaseModel):
    """Parsed GitHub push webhook event.

    Instances are constructed once per delivery by the WebhookHandler and
    are never mutated afterwards.

    Attributes:
        ref: The full git ref that was pushed (e.g. ``refs/heads/main``).
        deleted: True when the push deleted the ref.
        owner: The repository owner (user or organization).
        repository: The repository name (without owner prefix).
        pull_request_number: Pull request number carried by the payload,
            if any. Push payloads normally have none.
        installation_id: GitHub App installation that received the event.
        delivery_id: Value of the ``X-GitHub-Delivery`` header.
        sender: Login of the user that triggered the push.
        after: Commit SHA the ref points to after the push.
    """

    model_config = ConfigDict(frozen=True)

    ref: str = Field(..., min_length=1)

    deleted: bool = False

    owner: str = Field(..., min_length=1)

    repository: str = Field(..., min_length=1)

    pull_request_number: Optional[int] = Field(default=None, gt=0)

    installation_id: Optional[int] = Field(default=None, gt=0)

    delivery_id: Optional[str] = None

    sender: Optional[str] = None

    after: Optional[str] = None

    @property
    def branch(self) -> Optional[str]:
        """Branch name for branch refs, None for tags and other refs."""
        if self.ref.startswith(BRANCH_REF_PREFIX):
            return self.ref[len(BRANCH_REF_PREFIX):]
        return None

    @property
    def full_repository(self) -> str:
        """Repository path in format "{owner}/{repository}"."""
        return f"{self.owner}/{self.repository}"

    @property
    def event_id(self) -> str:
        """Identifier used to correlate logs in format "{owner}/{repo}@{ref}"."""
        return f"{self.full_repository}@{self.ref}"
