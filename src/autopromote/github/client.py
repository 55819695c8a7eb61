"""GitHub API client for pull request and ref operations.

This module provides an async wrapper around the GitHub REST API for:
- Finding and creating pull requests
- Merging pull requests
- Deleting git refs
- GitHub App endpoints (app identity, installation tokens)

Includes rate limiting and retry logic for API resilience. Every failed
request surfaces as a GitHubAPIError carrying the HTTP status and the
message GitHub returned, so callers can branch on the exception type
instead of probing response shapes.
"""

import asyncio
import json
import logging
import random
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from src.autopromote.github.models import InstallationToken, MergeResult, PullRequest


logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str]]


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)

    @property
    def api_message(self) -> str:
        """The ``message`` field GitHub returned, or the error message.

        Returns:
            The most specific description of the failure available.
        """
        if self.response_body:
            try:
                body = json.loads(self.response_body)
            except ValueError:
                body = None
            if isinstance(body, dict) and isinstance(body.get("message"), str):
                return body["message"]
        return self.message


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class GitHubClient:
    """Async GitHub API client with rate limiting and retry logic.

    The client authenticates each request with a bearer token. The token
    is either fixed (``token``) or fetched per request from an async
    ``token_provider``, which is how GitHub App JWTs and installation
    tokens are refreshed without rebuilding the client.

    Attributes:
        base_url: Base URL for GitHub API (default: https://api.github.com).
        max_retries: Maximum number of retry attempts for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.

    Example:
        >>> client = GitHubClient(token="ghs_xxx")
        >>> async with client:
        ...     pr = await client.create_pull_request(
        ...         "acme", "widgets", head="topic", base="master", title="Topic"
        ...     )
    """

    # HTTP status codes that should trigger a retry
    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
        token_provider: Optional[TokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: Static bearer token. Ignored when token_provider is set.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            max_retries: Maximum number of retry attempts.
            base_delay: Base delay in seconds for exponential backoff.
            max_delay: Maximum delay in seconds between retries.
            timeout: Request timeout in seconds.
            token_provider: Coroutine function returning a fresh token.
            transport: Optional httpx transport (used by tests).
        """
        self.token = token
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "autopromote/1.0",
        }

    async def _auth_headers(self) -> Dict[str, str]:
        """Build the Authorization header for the next request."""
        token = self.token
        if self.token_provider is not None:
            token = await self.token_provider()
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(
        self,
        exc_type: Any,
        exc_val: Any,
        exc_tb: Any,
    ) -> None:
        await self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate backoff delay with full jitter.

        Args:
            attempt: The current retry attempt (0-indexed).

        Returns:
            Delay in seconds before the next retry.
        """
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    def _parse_int_header(
        self,
        headers: httpx.Headers,
        name: str,
    ) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    def _raise_rate_limit(self, response: httpx.Response) -> None:
        """Raise RateLimitError with the reset information GitHub sent.

        Args:
            response: The rate-limited response from GitHub.

        Raises:
            RateLimitError: Always.
        """
        reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")

        retry_after = None
        if reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        retry_after_header = self._parse_int_header(response.headers, "retry-after")
        if retry_after_header is not None:
            retry_after = retry_after_header

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={
                "reset_at": reset_at,
                "retry_after": retry_after,
                "limit": self._parse_int_header(response.headers, "x-ratelimit-limit"),
                "used": self._parse_int_header(response.headers, "x-ratelimit-used"),
            },
        )

        raise RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            response_body=response.text,
            request_url=str(response.url),
            reset_at=reset_at,
            retry_after=retry_after,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make an HTTP request with retry logic.

        Transient failures (timeouts, connection errors and the status
        codes in RETRYABLE_STATUS_CODES) are retried with exponential
        backoff. Rate limit responses are raised immediately.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, PATCH).
            path: API path (e.g., /repos/owner/repo/pulls).
            json_data: Optional JSON body for the request.
            params: Optional query string parameters.

        Returns:
            The HTTP response from GitHub.

        Raises:
            GitHubAPIError: If the request fails after all retries.
            RateLimitError: If rate limit is exceeded.
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    json=json_data,
                    params=params,
                    headers=await self._auth_headers(),
                )

                if response.status_code == 403:
                    remaining = self._parse_int_header(
                        response.headers,
                        "x-ratelimit-remaining",
                    )
                    if remaining == 0:
                        self._raise_rate_limit(response)

                if response.status_code == 429:
                    self._raise_rate_limit(response)

                if response.status_code in self.RETRYABLE_STATUS_CODES:
                    if attempt < self.max_retries:
                        delay = self._calculate_backoff(attempt)
                        logger.warning(
                            "Retryable error from GitHub API",
                            extra={
                                "status_code": response.status_code,
                                "attempt": attempt + 1,
                                "max_retries": self.max_retries,
                                "delay": delay,
                                "path": path,
                            },
                        )
                        await asyncio.sleep(delay)
                        continue

                if response.status_code >= 400:
                    error_body = response.text
                    logger.error(
                        "GitHub API error",
                        extra={
                            "status_code": response.status_code,
                            "path": path,
                            "method": method,
                            "response_body": error_body[:500],
                        },
                    )
                    raise GitHubAPIError(
                        message=f"GitHub API error: {response.status_code}",
                        status_code=response.status_code,
                        response_body=error_body,
                        request_url=str(response.url),
                    )

                return response

            except GitHubAPIError:
                raise
            except (httpx.TimeoutException, httpx.RequestError) as e:
                last_exception = e
                if attempt < self.max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Request error, retrying",
                        extra={
                            "error": str(e),
                            "attempt": attempt + 1,
                            "max_retries": self.max_retries,
                            "delay": delay,
                            "path": path,
                        },
                    )
                    await asyncio.sleep(delay)
                    continue

        logger.error(
            "GitHub API request failed after all retries",
            extra={
                "path": path,
                "method": method,
                "max_retries": self.max_retries,
                "last_error": str(last_exception),
            },
        )
        raise GitHubAPIError(
            message=f"Request failed after {self.max_retries} retries: {last_exception}",
            request_url=f"{self.base_url}{path}",
        )

    # -------------------------------------------------------------------------
    # Pull requests and refs
    # -------------------------------------------------------------------------

    async def find_open_pull_request(
        self,
        owner: str,
        repo: str,
        head: str,
        base: str,
    ) -> Optional[PullRequest]:
        """Find an open pull request from ``head`` into ``base``.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            head: Head branch name (same-repository branch).
            base: Base branch name.

        Returns:
            The first matching open PullRequest, or None.

        Raises:
            GitHubAPIError: If the request fails.
        """
        path = f"/repos/{owner}/{repo}/pulls"

        response = await self._request(
            method="GET",
            path=path,
            params={"state": "open", "head": f"{owner}:{head}", "base": base},
        )

        pulls: List[Dict[str, Any]] = response.json()
        if not pulls:
            return None

        pull_request = PullRequest.from_github_response(pulls[0])
        logger.info(
            "Found open pull request",
            extra={
                "owner": owner,
                "repo": repo,
                "pr_number": pull_request.number,
                "head": head,
                "base": base,
            },
        )
        return pull_request

    async def create_pull_request(
        self,
        owner: str,
        repo: str,
        head: str,
        base: str,
        title: str,
        body: Optional[str] = None,
    ) -> PullRequest:
        """Create a pull request.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            head: Branch containing the changes.
            base: Branch the changes are pulled into.
            title: Pull request title.
            body: Optional pull request description.

        Returns:
            The created PullRequest.

        Raises:
            GitHubAPIError: If the request fails (422 when the branches
                have no commits between them).
        """
        path = f"/repos/{owner}/{repo}/pulls"

        logger.info(
            "Creating pull request",
            extra={
                "owner": owner,
                "repo": repo,
                "title": title,
                "head": head,
                "base": base,
            },
        )

        json_data: Dict[str, Any] = {"title": title, "head": head, "base": base}
        if body is not None:
            json_data["body"] = body

        response = await self._request(method="POST", path=path, json_data=json_data)

        pull_request = PullRequest.from_github_response(response.json())
        logger.info(
            "Pull request created successfully",
            extra={
                "owner": owner,
                "repo": repo,
                "pr_number": pull_request.number,
                "pr_url": pull_request.url,
            },
        )
        return pull_request

    async def merge_pull_request(
        self,
        owner: str,
        repo: str,
        pull_number: int,
        merge_method: str = "squash",
        commit_title: Optional[str] = None,
    ) -> MergeResult:
        """Merge a pull request.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            pull_number: Number of the pull request to merge.
            merge_method: One of ``merge``, ``squash`` or ``rebase``.
            commit_title: Title for the merge commit.

        Returns:
            MergeResult with the merge commit SHA.

        Raises:
            GitHubAPIError: If the request fails (405 when not mergeable,
                409 on a head SHA conflict).
        """
        path = f"/repos/{owner}/{repo}/pulls/{pull_number}/merge"

        logger.info(
            "Merging pull request",
            extra={
                "owner": owner,
                "repo": repo,
                "pr_number": pull_number,
                "merge_method": merge_method,
            },
        )

        json_data: Dict[str, Any] = {"merge_method": merge_method}
        if commit_title is not None:
            json_data["commit_title"] = commit_title

        response = await self._request(method="PUT", path=path, json_data=json_data)

        result = MergeResult.from_github_response(response.json())
        logger.info(
            "Pull request merged",
            extra={
                "owner": owner,
                "repo": repo,
                "pr_number": pull_number,
                "sha": result.sha,
            },
        )
        return result

    async def delete_ref(self, owner: str, repo: str, ref: str) -> None:
        """Delete a git reference.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            ref: Reference without the ``refs/`` prefix (e.g. ``heads/topic``).

        Raises:
            GitHubAPIError: If the request fails (422 when the ref does
                not exist).
        """
        path = f"/repos/{owner}/{repo}/git/refs/{quote(ref, safe='/')}"

        logger.info(
            "Deleting ref",
            extra={"owner": owner, "repo": repo, "ref": ref},
        )

        await self._request(method="DELETE", path=path)

        logger.info(
            "Ref deleted",
            extra={"owner": owner, "repo": repo, "ref": ref},
        )

    # -------------------------------------------------------------------------
    # GitHub App endpoints (require an app JWT)
    # -------------------------------------------------------------------------

    async def get_authenticated_app(self) -> Dict[str, Any]:
        """Get the GitHub App the JWT belongs to (``GET /app``)."""
        response = await self._request(method="GET", path="/app")
        return response.json()

    async def get_repository_installation(self, owner: str, repo: str) -> Dict[str, Any]:
        """Get the app installation covering a repository."""
        response = await self._request(
            method="GET",
            path=f"/repos/{owner}/{repo}/installation",
        )
        return response.json()

    async def create_installation_token(self, installation_id: int) -> InstallationToken:
        """Exchange the app JWT for an installation access token."""
        response = await self._request(
            method="POST",
            path=f"/app/installations/{installation_id}/access_tokens",
        )
        return InstallationToken.from_github_response(response.json())
