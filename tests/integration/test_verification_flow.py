"""
Integration tests for the token verification flow against the mock
identity API.
"""

import time

import pytest
import httpx
from fastapi.testclient import TestClient

from mocks.identity.server import MockIdentityServer
from service_verifier.app.main import create_app
from shared.config import get_config

IDENTITY_URL = "http://identity.mock/users/@me"
WEBHOOK_URL = "http://identity.mock/webhooks/audit"
ITEM_DELAY_MS = 5


def make_token(i: int) -> str:
    return f"{i:024d}.GhIjKl.{'q' * 38}"


class TestVerificationFlow:
    """End-to-end scenarios through the HTTP surface."""

    @pytest.fixture
    def identity(self):
        """Mock identity API with one known account."""
        server = MockIdentityServer()
        server.add_account(make_token(1), "123", "jay")
        return server

    @pytest.fixture
    def app(self, identity):
        """Verifier service wired to the mock identity API."""
        config = get_config(
            "verifier",
            8020,
            identity_api_url=IDENTITY_URL,
            audit_webhook_url=WEBHOOK_URL,
            batch_item_delay_ms=ITEM_DELAY_MS,
        )
        http_client = httpx.AsyncClient(transport=httpx.ASGITransport(app=identity.app))
        return create_app(config=config, http_client=http_client)

    @pytest.fixture
    def client(self, app):
        """Test client with the service lifespan running."""
        with TestClient(app) as test_client:
            yield test_client

    def test_short_token_rejected_without_upstream_call(self, client, identity):
        """Scenario A: a 3-character token."""
        response = client.post("/tokens/check", json={"token": "abc"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert identity.requests == []

    def test_unauthorized_token_not_saved(self, client, identity):
        """Scenario B: upstream answers 401."""
        token = make_token(2)

        response = client.post("/tokens/check", json={"token": token})

        assert response.status_code == 200
        assert response.json() == {"token": token, "valid": False, "error": "invalid or expired token"}
        assert identity.requests == [token]
        assert client.get("/tokens/saved").json()["count"] == 0

    def test_valid_token_saved_and_indexed(self, client):
        """Scenario C: upstream returns a profile."""
        token = make_token(1)

        response = client.post("/tokens/check", json={"token": token})

        data = response.json()
        assert data["valid"] is True
        assert data["user"]["id"] == "123"
        assert data["user"]["username"] == "jay"
        assert data["user"]["discriminator"] == "0"
        assert data["user"]["avatar"] is None
        assert data["user"]["email"] is None
        assert data["user"]["phone"] is None

        saved = client.get("/tokens/saved/123").json()
        assert saved["count"] == 1
        assert saved["tokens"][0]["account_id"] == "123"
        assert saved["tokens"][0]["token"] == token

    def test_repeated_check_refreshes_record(self, client):
        """Verifying the same token twice keeps one record with a newer timestamp."""
        token = make_token(1)

        client.post("/tokens/check", json={"token": token})
        first = client.get("/tokens/saved/123").json()["tokens"][0]
        time.sleep(0.002)
        client.post("/tokens/check", json={"token": token})
        saved = client.get("/tokens/saved/123").json()

        assert saved["count"] == 1
        assert saved["tokens"][0]["account_id"] == "123"
        assert saved["tokens"][0]["created_at_ms"] > first["created_at_ms"]

    def test_rate_limited_and_malformed_upstream(self, client, identity):
        """429 and unexpected bodies become invalid outcomes."""
        limited, broken = make_token(3), make_token(4)
        identity.rate_limited.add(limited)
        identity.malformed.add(broken)

        limited_result = client.post("/tokens/check", json={"token": limited}).json()
        broken_result = client.post("/tokens/check", json={"token": broken}).json()

        assert limited_result["error"] == "rate limited by upstream; try later"
        assert broken_result["valid"] is False
        assert broken_result["error"].startswith("unexpected upstream response")

    def test_bulk_check_mixed(self, client, identity):
        """Bulk results keep input order and only successes are saved."""
        tokens = [make_token(1), make_token(5), make_token(6)]

        data = client.post("/tokens/check-bulk", json={"tokens": "\n".join(tokens)}).json()

        assert [result["token"] for result in data["results"]] == tokens
        assert [result["valid"] for result in data["results"]] == [True, False, False]
        assert data["count"] == {"total": 3, "valid": 1, "invalid": 2}
        assert data["truncated"] is False
        assert identity.requests == tokens
        assert client.get("/tokens/saved").json()["count"] == 1

    def test_bulk_truncation_and_pacing(self, client, identity):
        """Scenario D: 150 distinct tokens are cut to 100 and paced."""
        tokens = [make_token(i) for i in range(1000, 1150)]

        start = time.monotonic()
        data = client.post("/tokens/check-bulk", json={"tokens": "\n".join(tokens)}).json()
        elapsed = time.monotonic() - start

        assert data["count"]["total"] == 100
        assert data["count"]["valid"] + data["count"]["invalid"] == 100
        assert data["truncated"] is True
        assert [result["token"] for result in data["results"]] == tokens[:100]
        assert identity.requests == tokens[:100]
        assert elapsed >= 100 * ITEM_DELAY_MS / 1000

    def test_audit_webhook_receives_request_events(self, app, identity):
        """Forwarded audit events arrive sanitized; per-token events stay local."""
        token = make_token(1)

        with TestClient(app) as client:
            client.post("/tokens/check", json={"token": token})
            client.post("/tokens/check-bulk", json={"tokens": token})

        titles = [event["embeds"][0]["title"] for event in identity.audit_events]
        assert len(titles) == 2
        assert all(title.endswith("REQUEST") for title in titles)
        for event in identity.audit_events:
            assert token not in str(event)
