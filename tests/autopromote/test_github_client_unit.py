"""Unit tests for the GitHub REST client.

Requests are served by an httpx.MockTransport so the tests exercise the
real request building, retry and error handling paths without network
access.
"""

import asyncio
import json
from typing import Callable, List

import httpx
import pytest

from src.autopromote.github import (
    GitHubAPIError,
    GitHubClient,
    PullRequest,
    RateLimitError,
)


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def make_client(
    handler: Callable[[httpx.Request], httpx.Response],
    **kwargs,
) -> GitHubClient:
    kwargs.setdefault("token", "ghs_test")
    kwargs.setdefault("base_delay", 0.0)
    return GitHubClient(transport=httpx.MockTransport(handler), **kwargs)


def pull_json(number: int = 42) -> dict:
    return {
        "number": number,
        "html_url": f"https://github.com/acme/widgets/pull/{number}",
        "state": "open",
        "title": "[skip ci] chore: Mass bump versions",
        "head": {"ref": "mass-bump-versions"},
        "base": {"ref": "master"},
    }


class TestPullRequests:
    def test_create_pull_request(self):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json=pull_json())

        client = make_client(handler)
        pr = run_async(
            client.create_pull_request(
                "acme",
                "widgets",
                head="mass-bump-versions",
                base="master",
                title="[skip ci] chore: Mass bump versions",
            )
        )

        assert isinstance(pr, PullRequest)
        assert pr.number == 42
        assert pr.head_ref == "mass-bump-versions"

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/repos/acme/widgets/pulls"
        assert request.headers["Authorization"] == "Bearer ghs_test"
        assert request.headers["Accept"] == "application/vnd.github+json"
        assert json.loads(request.content) == {
            "title": "[skip ci] chore: Mass bump versions",
            "head": "mass-bump-versions",
            "base": "master",
        }

    def test_create_pull_request_validation_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                422,
                json={"message": "Validation Failed", "errors": [{"message": "No commits"}]},
            )

        client = make_client(handler)
        with pytest.raises(GitHubAPIError) as exc_info:
            run_async(
                client.create_pull_request(
                    "acme", "widgets", head="topic", base="master", title="t"
                )
            )

        assert exc_info.value.status_code == 422
        assert exc_info.value.api_message == "Validation Failed"

    def test_find_open_pull_request_queries_head_and_base(self):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[pull_json(7)])

        pr = run_async(
            make_client(handler).find_open_pull_request(
                "acme", "widgets", head="mass-bump-versions", base="master"
            )
        )

        assert pr.number == 7
        params = seen[0].url.params
        assert seen[0].method == "GET"
        assert params["state"] == "open"
        assert params["head"] == "acme:mass-bump-versions"
        assert params["base"] == "master"

    def test_find_open_pull_request_none(self):
        client = make_client(lambda request: httpx.Response(200, json=[]))

        assert run_async(
            client.find_open_pull_request("acme", "widgets", head="a", base="b")
        ) is None

    def test_merge_pull_request(self):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={"sha": "6dcb09b", "merged": True, "message": "Pull Request successfully merged"},
            )

        result = run_async(
            make_client(handler).merge_pull_request(
                "acme", "widgets", 42, merge_method="squash", commit_title="Bump"
            )
        )

        assert result.merged is True
        assert result.sha == "6dcb09b"
        assert seen[0].method == "PUT"
        assert seen[0].url.path == "/repos/acme/widgets/pulls/42/merge"
        assert json.loads(seen[0].content) == {"merge_method": "squash", "commit_title": "Bump"}

    def test_merge_not_allowed(self):
        client = make_client(
            lambda request: httpx.Response(405, json={"message": "Pull Request is not mergeable"})
        )

        with pytest.raises(GitHubAPIError) as exc_info:
            run_async(client.merge_pull_request("acme", "widgets", 42))

        assert exc_info.value.status_code == 405
        assert exc_info.value.api_message == "Pull Request is not mergeable"


class TestDeleteRef:
    def test_delete_ref(self):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        run_async(make_client(handler).delete_ref("acme", "widgets", "heads/mass-bump-versions"))

        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/repos/acme/widgets/git/refs/heads/mass-bump-versions"

    def test_delete_missing_ref(self):
        client = make_client(
            lambda request: httpx.Response(422, json={"message": "Reference does not exist"})
        )

        with pytest.raises(GitHubAPIError) as exc_info:
            run_async(client.delete_ref("acme", "widgets", "heads/gone"))

        assert exc_info.value.status_code == 422
        assert exc_info.value.api_message == "Reference does not exist"


class TestRetries:
    def test_retries_server_errors_then_succeeds(self):
        responses = [httpx.Response(502), httpx.Response(503), httpx.Response(204)]
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return responses[len(calls) - 1]

        run_async(make_client(handler).delete_ref("acme", "widgets", "heads/x"))

        assert len(calls) == 3

    def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500, text="boom")

        with pytest.raises(GitHubAPIError) as exc_info:
            run_async(make_client(handler, max_retries=2).delete_ref("acme", "widgets", "heads/x"))

        assert len(calls) == 3
        assert exc_info.value.status_code == 500
        assert exc_info.value.api_message == "GitHub API error: 500"

    def test_transport_errors_raise_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(GitHubAPIError, match="after 1 retries"):
            run_async(make_client(handler, max_retries=1).get_authenticated_app())

    def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404, json={"message": "Not Found"})

        with pytest.raises(GitHubAPIError):
            run_async(make_client(handler).get_repository_installation("acme", "widgets"))

        assert len(calls) == 1


class TestRateLimits:
    def test_exhausted_rate_limit(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                403,
                headers={"x-ratelimit-remaining": "0", "retry-after": "30"},
                json={"message": "API rate limit exceeded"},
            )

        with pytest.raises(RateLimitError) as exc_info:
            run_async(make_client(handler).delete_ref("acme", "widgets", "heads/x"))

        assert exc_info.value.status_code == 403
        assert exc_info.value.retry_after == 30
        assert exc_info.value.api_message == "API rate limit exceeded"

    def test_forbidden_without_rate_limit_is_plain_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                403,
                headers={"x-ratelimit-remaining": "4999"},
                json={"message": "Resource not accessible by integration"},
            )

        with pytest.raises(GitHubAPIError) as exc_info:
            run_async(make_client(handler).delete_ref("acme", "widgets", "heads/x"))

        assert not isinstance(exc_info.value, RateLimitError)
        assert exc_info.value.api_message == "Resource not accessible by integration"


class TestAuthentication:
    def test_token_provider_called_per_request(self):
        tokens = iter(["first", "second"])
        seen: List[str] = []

        async def provider() -> str:
            return next(tokens)

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["Authorization"])
            return httpx.Response(200, json={"name": "autopromote"})

        client = make_client(handler, token=None, token_provider=provider)

        async def scenario():
            await client.get_authenticated_app()
            await client.get_authenticated_app()

        run_async(scenario())

        assert seen == ["Bearer first", "Bearer second"]

    def test_no_token_sends_no_authorization(self):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        run_async(make_client(handler, token=None).get_authenticated_app())

        assert "Authorization" not in seen[0].headers


class TestGitHubAPIError:
    def test_api_message_without_json_body(self):
        error = GitHubAPIError("GitHub API error: 502", status_code=502, response_body="<html>")

        assert error.api_message == "GitHub API error: 502"
