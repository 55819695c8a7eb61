"""GitHub API response models.

Pydantic models for the parts of GitHub REST responses the service
consumes: pull requests, merge results and installation access tokens.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class PullRequest(BaseModel):
    """A pull request as returned by the GitHub pulls API.

    Attributes:
        number: The pull request number within the repository.
        url: The pull request HTML URL.
        state: ``open`` or ``closed``.
        title: The pull request title.
        head_ref: Name of the head branch.
        base_ref: Name of the base branch.
    """

    number: int = Field(..., gt=0)
    url: str = ""
    state: str = "open"
    title: str = ""
    head_ref: Optional[str] = None
    base_ref: Optional[str] = None

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "PullRequest":
        """Build a PullRequest from a GitHub pulls API object."""
        head = data.get("head") or {}
        base = data.get("base") or {}
        return cls(
            number=data["number"],
            url=data.get("html_url") or "",
            state=data.get("state") or "open",
            title=data.get("title") or "",
            head_ref=head.get("ref"),
            base_ref=base.get("ref"),
        )


class MergeResult(BaseModel):
    """Result of ``PUT /repos/{owner}/{repo}/pulls/{number}/merge``."""

    sha: Optional[str] = None
    merged: bool = False
    message: str = ""

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "MergeResult":
        return cls(
            sha=data.get("sha"),
            merged=bool(data.get("merged", False)),
            message=data.get("message") or "",
        )


class InstallationToken(BaseModel):
    """Short-lived installation access token for a GitHub App installation.

    Attributes:
        token: The bearer token.
        expires_at: When GitHub will stop accepting the token (UTC).
    """

    token: str = Field(..., min_length=1)
    expires_at: datetime

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "InstallationToken":
        expires_at = data.get("expires_at")
        if isinstance(expires_at, str):
            parsed = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))
        else:
            # Installation tokens live for one hour
            parsed = datetime.now(timezone.utc) + timedelta(hours=1)
        return cls(token=data["token"], expires_at=parsed)

    def is_expired(
        self,
        now: Optional[datetime] = None,
        margin: timedelta = timedelta(minutes=1),
    ) -> bool:
        """Whether the token expires within ``margin`` of ``now``."""
        current = now or datetime.now(timezone.utc)
        return current + margin >= self.expires_at
