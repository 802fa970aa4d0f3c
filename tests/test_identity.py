"""Tests for the identity verifiers."""

import httpx
import pytest

from app.core.exceptions import InvalidTokenError
from app.services.identity import (
    GoogleIdentityVerifier,
    MockIdentityVerifier,
    get_identity_verifier,
    reset_identity_verifier,
)

CLIENT_ID = "billing-web.apps.googleusercontent.com"
TOKENINFO_URL = "https://oauth2.example.test/tokeninfo"


def tokeninfo(**overrides) -> dict:
    info = {
        "iss": "https://accounts.google.com",
        "aud": CLIENT_ID,
        "sub": "108234567890",
        "email": "owner@pizzeria.com",
        "email_verified": "true",
        "name": "Asha Rao",
    }
    info.update(overrides)
    return info


def google_verifier(status_code: int = 200, payload: dict = None) -> GoogleIdentityVerifier:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["id_token"] == "id-token"
        return httpx.Response(status_code, json=payload if payload is not None else tokeninfo())

    return GoogleIdentityVerifier(
        client_id=CLIENT_ID,
        tokeninfo_url=TOKENINFO_URL,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_mock_verifier_trusts_request():
    verifier = MockIdentityVerifier()

    identity = await verifier.verify(" Owner@Pizzeria.com", " Asha ", "g-1", None)

    assert identity.email == "owner@pizzeria.com"
    assert identity.name == "Asha"
    assert identity.google_id == "g-1"
    assert await verifier.health_check()


@pytest.mark.asyncio
async def test_google_verifier_accepts_valid_token():
    verifier = google_verifier()

    identity = await verifier.verify("Owner@Pizzeria.com", "Asha", "108234567890", "id-token")

    assert identity.email == "owner@pizzeria.com"
    assert identity.google_id == "108234567890"
    assert verifier.provider_name == "google"


@pytest.mark.asyncio
async def test_google_verifier_requires_token():
    with pytest.raises(InvalidTokenError):
        await google_verifier().verify("owner@pizzeria.com", "Asha", None, None)


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [
    {"aud": "someone-else"},
    {"iss": "evil.example.com"},
    {"email_verified": "false"},
    {"email": "intruder@example.com"},
    {"sub": "999"},
])
async def test_google_verifier_rejects_mismatched_claims(overrides):
    verifier = google_verifier(payload=tokeninfo(**overrides))

    with pytest.raises(InvalidTokenError):
        await verifier.verify("owner@pizzeria.com", "Asha", "108234567890", "id-token")


@pytest.mark.asyncio
async def test_google_verifier_rejected_by_google():
    verifier = google_verifier(status_code=400, payload={"error": "invalid_token"})

    with pytest.raises(InvalidTokenError):
        await verifier.verify("owner@pizzeria.com", "Asha", None, "id-token")


@pytest.mark.asyncio
async def test_google_verifier_network_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    verifier = GoogleIdentityVerifier(
        client_id=CLIENT_ID,
        tokeninfo_url=TOKENINFO_URL,
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(InvalidTokenError):
        await verifier.verify("owner@pizzeria.com", "Asha", None, "id-token")


def test_google_verifier_requires_client_id(monkeypatch):
    monkeypatch.setattr("app.services.identity.google.get_settings", lambda: type(
        "S", (), {"google_client_id": None, "google_tokeninfo_url": TOKENINFO_URL, "identity_request_timeout": 5.0}
    )())

    with pytest.raises(ValueError):
        GoogleIdentityVerifier()


def test_factory_uses_mock_in_development():
    reset_identity_verifier()

    assert isinstance(get_identity_verifier(), MockIdentityVerifier)
    assert get_identity_verifier() is get_identity_verifier()
