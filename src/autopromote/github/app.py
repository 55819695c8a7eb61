"""GitHub App authentication.

A GitHub App authenticates in two steps:

1. It signs a short-lived JWT (RS256, issuer = app id) with its private key.
   The JWT authorizes app-level endpoints such as ``GET /app`` and
   ``POST /app/installations/{id}/access_tokens``.
2. It exchanges the JWT for an installation access token, which acts on
   the repositories of one installation for about an hour.

GitHubApp hides both steps behind ``client_for(event)``: the returned
GitHubClient always sends a valid installation token.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx
import jwt

from src.autopromote.github.client import GitHubClient
from src.autopromote.github.models import InstallationToken
from src.autopromote.webhook.models import PushEvent

logger = logging.getLogger(__name__)

# GitHub rejects JWTs that expire more than 10 minutes after issue
JWT_LIFETIME_SECONDS = 9 * 60

# Backdate iat to tolerate clock drift between us and GitHub
JWT_CLOCK_SKEW_SECONDS = 60


class GitHubApp:
    """Authenticated GitHub App identity.

    Attributes:
        app_id: The GitHub App identifier (JWT issuer).
        base_url: Base URL for the GitHub API.
    """

    def __init__(
        self,
        app_id: str,
        private_key: str,
        base_url: str = "https://api.github.com",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.app_id = app_id
        self.base_url = base_url
        self._private_key = private_key
        self._transport = transport
        self._clock = clock
        self._tokens: Dict[int, InstallationToken] = {}
        self._token_locks: Dict[int, asyncio.Lock] = {}
        self._installation_clients: Dict[int, GitHubClient] = {}
        self.app_client = GitHubClient(
            base_url=base_url,
            token_provider=self._app_token,
            transport=transport,
        )

    def create_jwt(self) -> str:
        """Sign a JWT identifying the app.

        Returns:
            The encoded RS256 JWT.
        """
        now = int(self._clock())
        payload = {
            "iat": now - JWT_CLOCK_SKEW_SECONDS,
            "exp": now + JWT_LIFETIME_SECONDS,
            "iss": self.app_id,
        }
        return jwt.encode(payload, self._private_key, algorithm="RS256")

    async def _app_token(self) -> str:
        return self.create_jwt()

    async def get_identity(self) -> Dict[str, Any]:
        """Return the ``GET /app`` document for this app."""
        return await self.app_client.get_authenticated_app()

    async def installation_token(self, installation_id: int) -> str:
        """Return a valid installation token, minting one when needed.

        Tokens are cached per installation until shortly before they
        expire. Concurrent callers for one installation share a single
        exchange.

        Args:
            installation_id: The installation to act as.

        Returns:
            The installation access token.

        Raises:
            GitHubAPIError: If the token exchange fails.
        """
        lock = self._token_locks.setdefault(installation_id, asyncio.Lock())
        async with lock:
            cached = self._tokens.get(installation_id)
            if cached is not None and not cached.is_expired():
                return cached.token

            logger.info(
                "Requesting installation token",
                extra={"installation_id": installation_id},
            )
            token = await self.app_client.create_installation_token(installation_id)
            self._tokens[installation_id] = token
            return token.token

    async def resolve_installation_id(self, owner: str, repo: str) -> int:
        """Look up the installation that covers ``owner/repo``."""
        installation = await self.app_client.get_repository_installation(owner, repo)
        return int(installation["id"])

    async def installation_client(self, installation_id: int) -> GitHubClient:
        """Return the client acting as ``installation_id``.

        Clients are created once per installation and reused.
        """
        client = self._installation_clients.get(installation_id)
        if client is None:

            async def token_provider() -> str:
                return await self.installation_token(installation_id)

            client = GitHubClient(
                base_url=self.base_url,
                token_provider=token_provider,
                transport=self._transport,
            )
            self._installation_clients[installation_id] = client
        return client

    async def client_for(self, event: PushEvent) -> GitHubClient:
        """Return an installation client for the repository of ``event``.

        The installation id comes from the delivery payload; when it is
        absent the repository's installation is looked up.
        """
        installation_id = event.installation_id
        if installation_id is None:
            installation_id = await self.resolve_installation_id(
                event.owner, event.repository
            )
        return await self.installation_client(installation_id)

    async def close(self) -> None:
        """Close the app client and every installation client."""
        for client in self._installation_clients.values():
            await client.close()
        self._installation_clients.clear()
        await self.app_client.close()
