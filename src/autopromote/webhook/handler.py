"""GitHub webhook handler.

This module provides the WebhookHandler class that verifies webhook
signatures and parses ``push`` payloads into PushEvent objects.

GitHub Webhook Payload Structure (push event, abridged):
{
  "ref": "refs/heads/mass-bump-versions",
  "deleted": false,
  "after": "6113728f27ae82c7b1a177c8d03f9e96e0adf246",
  "repository": {
    "name": "widgets",
    "owner": {"login": "acme", "name": "acme"}
  },
  "installation": {"id": 1234},
  "sender": {"login": "octocat"}
}
"""

import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

from .models import PushEvent

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


class SignatureVerificationError(Exception):
    """Raised when a delivery's X-Hub-Signature-256 does not match its body."""

    def __init__(self, message: str, delivery_id: Optional[str] = None):
        self.message = message
        self.delivery_id = delivery_id
        super().__init__(message)


def compute_signature(secret: str, body: bytes) -> str:
    """Compute the X-Hub-Signature-256 header value for a body.

    Args:
        secret: The shared webhook secret.
        body: The raw request body.

    Returns:
        The signature in ``sha256=<hexdigest>`` form.
    """
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


class WebhookHandler:
    """Handler for verifying and parsing GitHub webhook deliveries.

    Attributes:
        secret: The webhook secret shared with GitHub.
    """

    def __init__(self, secret: str) -> None:
        self.secret = secret

    def verify_signature(
        self,
        body: bytes,
        signature: Optional[str],
        delivery_id: Optional[str] = None,
    ) -> None:
        """Verify the HMAC-SHA256 signature of a delivery.

        Args:
            body: The raw request body.
            signature: The X-Hub-Signature-256 header value.
            delivery_id: The X-GitHub-Delivery header value, for logging.

        Raises:
            SignatureVerificationError: If the signature is missing or wrong.
        """
        if not signature:
            raise SignatureVerificationError(
                "Missing X-Hub-Signature-256 header", delivery_id
            )
        if not signature.startswith(SIGNATURE_PREFIX):
            raise SignatureVerificationError(
                "Unsupported signature algorithm", delivery_id
            )

        expected = compute_signature(self.secret, body)
        if not hmac.compare_digest(signature, expected):
            raise SignatureVerificationError(
                "Signature does not match payload", delivery_id
            )

    def parse_push_event(
        self,
        payload: Dict[str, Any],
        delivery_id: Optional[str] = None,
    ) -> Optional[PushEvent]:
        """Parse a GitHub push event from a webhook payload.

        Args:
            payload: The raw webhook payload as a dictionary.
            delivery_id: The X-GitHub-Delivery header value.

        Returns:
            PushEvent if parsing succeeds, None for malformed payloads.
        """
        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return None

        try:
            ref = payload.get("ref")
            if not isinstance(ref, str) or not ref.strip():
                logger.warning("Missing or invalid 'ref' field in payload: %s", ref)
                return None

            repo_data = payload.get("repository")
            if not isinstance(repo_data, dict):
                logger.warning(
                    "Missing or invalid 'repository' field in payload: %s",
                    type(repo_data),
                )
                return None

            repo_name = repo_data.get("name")
            if not isinstance(repo_name, str) or not repo_name.strip():
                logger.warning("Invalid or empty repository name: %s", repo_name)
                return None

            owner = self._extract_owner(repo_data.get("owner"))
            if owner is None:
                return None

            event = PushEvent(
                ref=ref.strip(),
                deleted=self._extract_deleted(payload.get("deleted")),
                owner=owner,
                repository=repo_name.strip(),
                pull_request_number=self._extract_pull_request_number(payload),
                installation_id=self._extract_id(payload.get("installation")),
                delivery_id=delivery_id,
                sender=self._extract_login(payload.get("sender")),
                after=payload.get("after") if isinstance(payload.get("after"), str) else None,
            )

            logger.info(
                "Parsed push event: ref=%s, repository=%s, deleted=%s",
                event.ref,
                event.full_repository,
                event.deleted,
            )
            return event

        except Exception as e:
            logger.exception("Unexpected error parsing webhook payload: %s", e)
            return None

    def _extract_owner(self, owner_data: Any) -> Optional[str]:
        """Extract the owner login, falling back to the owner name.

        Push payloads carry both ``login`` and ``name`` on the owner object;
        older payload shapes only had ``name``.
        """
        if not isinstance(owner_data, dict):
            logger.warning("Missing or invalid repository owner data: %s", type(owner_data))
            return None

        for key in ("login", "name"):
            value = owner_data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()

        logger.warning("Repository owner has no login or name")
        return None

    def _extract_deleted(self, value: Any) -> bool:
        """Only a JSON ``true`` marks the push as a deletion."""
        if isinstance(value, bool):
            return value
        if value is not None:
            logger.warning("Ignoring non-boolean 'deleted' field in payload: %r", value)
        return False

    def _extract_login(self, user_data: Any) -> Optional[str]:
        if isinstance(user_data, dict):
            login = user_data.get("login")
            if isinstance(login, str) and login.strip():
                return login.strip()
        return None

    def _extract_id(self, data: Any) -> Optional[int]:
        if isinstance(data, dict):
            value = data.get("id")
            if isinstance(value, int) and not isinstance(value, bool) and value > 0:
                return value
        return None

    def _extract_pull_request_number(self, payload: Dict[str, Any]) -> Optional[int]:
        pull_request = payload.get("pull_request")
        if isinstance(pull_request, dict):
            number = pull_request.get("number")
            if isinstance(number, int) and not isinstance(number, bool) and number > 0:
                return number
        return None


def create_webhook_handler(secret: str) -> WebhookHandler:
    """Factory function to create a WebhookHandler instance.

    Args:
        secret: The GitHub webhook secret.

    Returns:
        A configured WebhookHandler instance.
    """
    return WebhookHandler(secret=secret)
