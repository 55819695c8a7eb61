"""GitHub API access for the promotion workflow.

This module provides:
- GitHubClient: async REST client with retry and rate limit handling
- GitHubApp: JWT signing and cached installation tokens
- Response models for pull requests, merges and installation tokens
"""

from src.autopromote.github.app import GitHubApp
from src.autopromote.github.client import (
    GitHubAPIError,
    GitHubClient,
    RateLimitError,
)
from src.autopromote.github.models import InstallationToken, MergeResult, PullRequest

__all__ = [
    "GitHubAPIError",
    "GitHubApp",
    "GitHubClient",
    "InstallationToken",
    "MergeResult",
    "PullRequest",
    "RateLimitError",
]
