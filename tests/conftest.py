"""Pytest configuration and shared fixtures for all tests."""

from typing import Any, Dict, Optional

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def make_push_payload(
    ref: str = "refs/heads/mass-bump-versions",
    deleted: bool = False,
    owner: str = "acme",
    repo: str = "widgets",
    installation_id: Optional[int] = 1234,
) -> Dict[str, Any]:
    """Build an abridged GitHub push webhook payload."""
    payload: Dict[str, Any] = {
        "ref": ref,
        "before": "0" * 40,
        "after": "6113728f27ae82c7b1a177c8d03f9e96e0adf246",
        "deleted": deleted,
        "repository": {
            "name": repo,
            "full_name": f"{owner}/{repo}",
            "owner": {"login": owner, "name": owner},
        },
        "sender": {"login": "octocat"},
    }
    if installation_id is not None:
        payload["installation"] = {"id": installation_id}
    return payload


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    """A throwaway RSA private key in PEM form."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def private_key_file(tmp_path, private_key_pem):
    path = tmp_path / "app.pem"
    path.write_text(private_key_pem)
    return path


@pytest.fixture
def app_env(monkeypatch, private_key_file):
    """Set the required environment variables for a valid configuration."""
    monkeypatch.setenv("APP_ID", "4242")
    monkeypatch.setenv("PRIVATE_KEY_PATH", str(private_key_file))
    monkeypatch.setenv("WEBHOOK_SECRET", "s3cr3t-webhook")
    for name in ("PORT", "TARGET_BRANCH", "BASE_BRANCH", "WEBHOOK_PATH", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def push_payload():
    """Factory fixture for push webhook payloads."""
    return make_push_payload
