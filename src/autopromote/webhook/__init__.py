"""GitHub webhook handling.

This module verifies and parses GitHub webhook deliveries. Only ``push``
events are turned into PushEvent objects; every delivery must carry a
valid X-Hub-Signature-256 computed with the shared webhook secret.
"""

from .handler import (
    SignatureVerificationError,
    WebhookHandler,
    compute_signature,
    create_webhook_handler,
)
from .models import PushEvent

__all__ = [
    "PushEvent",
    "SignatureVerificationError",
    "WebhookHandler",
    "compute_signature",
    "create_webhook_handler",
]
