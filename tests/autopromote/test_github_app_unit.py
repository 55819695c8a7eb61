"""Unit tests for GitHub App JWT signing and installation clients."""

import asyncio
from typing import List

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization

from src.autopromote.github import GitHubApp, GitHubAPIError
from src.autopromote.webhook import PushEvent

NOW = 1_700_000_000


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class FakeGitHub:
    """Minimal GitHub API double recording every request."""

    def __init__(self, expires_at: str = "2099-01-01T00:00:00Z"):
        self.requests: List[httpx.Request] = []
        self.expires_at = expires_at
        self.issued = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/app":
            return httpx.Response(200, json={"id": 4242, "name": "mass-bump-bot"})
        if path == "/repos/acme/widgets/installation":
            return httpx.Response(200, json={"id": 99})
        if path.startswith("/app/installations/") and path.endswith("/access_tokens"):
            self.issued += 1
            return httpx.Response(
                201,
                json={"token": f"ghs_{self.issued}", "expires_at": self.expires_at},
            )
        if path == "/repos/acme/widgets/git/refs/heads/mass-bump-versions":
            return httpx.Response(204)
        return httpx.Response(404, json={"message": "Not Found"})

    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def fake_github():
    return FakeGitHub()


@pytest.fixture
def github_app(private_key_pem, fake_github):
    return GitHubApp(
        app_id="4242",
        private_key=private_key_pem,
        transport=httpx.MockTransport(fake_github),
        clock=lambda: NOW,
    )


def make_event(installation_id=1234) -> PushEvent:
    return PushEvent(
        ref="refs/heads/mass-bump-versions",
        owner="acme",
        repository="widgets",
        installation_id=installation_id,
    )


class TestCreateJwt:
    def test_claims_and_signature(self, github_app, private_key_pem):
        token = github_app.create_jwt()

        public_key = serialization.load_pem_private_key(
            private_key_pem.encode(), password=None
        ).public_key()
        claims = jwt.decode(
            token,
            public_key,
            algorithms=["RS256"],
            options={"verify_exp": False, "verify_iat": False},
        )

        assert claims["iss"] == "4242"
        assert claims["iat"] == NOW - 60
        assert claims["exp"] == NOW + 540
        assert jwt.get_unverified_header(token)["alg"] == "RS256"


class TestIdentity:
    def test_get_identity_sends_app_jwt(self, github_app, fake_github):
        identity = run_async(github_app.get_identity())

        assert identity["name"] == "mass-bump-bot"
        auth = fake_github.requests[0].headers["Authorization"]
        assert auth == f"Bearer {github_app.create_jwt()}"


class TestInstallationTokens:
    def test_token_is_cached(self, github_app, fake_github):
        async def scenario():
            first = await github_app.installation_token(1234)
            second = await github_app.installation_token(1234)
            return first, second

        first, second = run_async(scenario())

        assert first == second == "ghs_1"
        assert fake_github.issued == 1
        assert fake_github.paths() == ["/app/installations/1234/access_tokens"]

    def test_expired_token_is_refreshed(self, private_key_pem):
        fake = FakeGitHub(expires_at="2000-01-01T00:00:00Z")
        app = GitHubApp(
            app_id="4242",
            private_key=private_key_pem,
            transport=httpx.MockTransport(fake),
        )

        async def scenario():
            await app.installation_token(1234)
            return await app.installation_token(1234)

        assert run_async(scenario()) == "ghs_2"
        assert fake.issued == 2

    def test_concurrent_callers_share_one_exchange(self, github_app, fake_github):
        async def scenario():
            return await asyncio.gather(
                *(github_app.installation_token(1234) for _ in range(5))
            )

        tokens = run_async(scenario())

        assert set(tokens) == {"ghs_1"}
        assert fake_github.issued == 1


class TestClientFor:
    def test_uses_event_installation(self, github_app, fake_github):
        async def scenario():
            client = await github_app.client_for(make_event(installation_id=1234))
            await client.delete_ref("acme", "widgets", "heads/mass-bump-versions")
            await github_app.close()

        run_async(scenario())

        assert fake_github.paths() == [
            "/app/installations/1234/access_tokens",
            "/repos/acme/widgets/git/refs/heads/mass-bump-versions",
        ]
        assert fake_github.requests[-1].headers["Authorization"] == "Bearer ghs_1"

    def test_looks_up_installation_when_missing(self, github_app, fake_github):
        async def scenario():
            client = await github_app.client_for(make_event(installation_id=None))
            await client.delete_ref("acme", "widgets", "heads/mass-bump-versions")

        run_async(scenario())

        assert fake_github.paths()[0] == "/repos/acme/widgets/installation"
        assert "/app/installations/99/access_tokens" in fake_github.paths()

    def test_installation_clients_are_reused(self, github_app):
        async def scenario():
            first = await github_app.client_for(make_event())
            second = await github_app.installation_client(1234)
            return first, second

        first, second = run_async(scenario())

        assert first is second

    def test_unknown_repository_raises_api_error(self, github_app):
        event = PushEvent(ref="refs/heads/mass-bump-versions", owner="acme", repository="gone")

        with pytest.raises(GitHubAPIError) as exc_info:
            run_async(github_app.client_for(event))

        assert exc_info.value.status_code == 404
