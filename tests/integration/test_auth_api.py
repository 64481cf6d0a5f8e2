"""Integration tests for account endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

from plantlife.main import create_app
from tests.integration.helpers import bearer, register


class TestRegister:
    """POST /api/auth/register"""

    @pytest.mark.asyncio
    async def test_register_returns_token_and_profile(self, client):
        account = await register(client, "alice", account_category="student")

        assert account["token_type"] == "bearer"
        assert account["user"]["handle"] == "alice"
        assert account["user"]["account_category"] == "student"
        assert account["user"]["posts_count"] == 0

        me = await client.get("/api/auth/me", headers=bearer(account))
        assert me.status_code == 200
        assert me.json()["id"] == account["user"]["id"]
        assert me.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_duplicate_handle_is_conflict(self, client):
        await register(client, "alice")
        response = await client.post(
            "/api/auth/register",
            json={"phone": "+19990000001", "handle": "ALICE", "display_name": "Other"},
        )

        assert response.status_code == 409
        body = response.json()
        assert body["title"] == "Conflict"
        assert "@alice" in body["detail"]

    @pytest.mark.asyncio
    async def test_malformed_handle_is_bad_request(self, client):
        response = await client.post(
            "/api/auth/register",
            json={"phone": "+19990000002", "handle": "a", "display_name": "A"},
        )
        assert response.status_code == 400
        assert response.json()["type"].endswith("validation_error")


class TestTokenAndMe:
    """POST /api/auth/token, GET /api/auth/me"""

    @pytest.mark.asyncio
    async def test_dev_token_by_phone(self, client):
        account = await register(client, "alice")
        phone = account["user"]["phone"]

        response = await client.post("/api/auth/token", json={"phone": phone})

        assert response.status_code == 200
        assert response.json()["user"]["handle"] == "alice"

    @pytest.mark.asyncio
    async def test_dev_token_unknown_phone(self, client):
        response = await client.post("/api/auth/token", json={"phone": "+10000000000"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_dev_tokens_disabled(self, memory_services, settings):
        locked = settings.model_copy(update={"allow_dev_tokens": False})
        app = create_app(locked, memory_services)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.post("/api/auth/token", json={"phone": "+15550000000"})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_me_requires_token(self, client):
        response = await client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_me_rejects_garbage_token(self, client):
        response = await client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "service": "plantlife",
            "storage": "memory",
            "skin": "twitter",
        }
