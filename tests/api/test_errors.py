"""Tests for the shared error shape and response headers."""
import logging
from collections.abc import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import IntegrityError

from api.errors import register_exception_handlers
from core import rate_limit_config
from core.rate_limit_config import RateLimitConfig, RateLimitedRoute
from core.redis import RedisClient


@pytest.fixture
async def failing_client() -> AsyncGenerator[AsyncClient]:
    """Client for a bare app whose routes raise unexpected errors."""
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("database password is hunter2")

    @app.get("/duplicate")
    async def duplicate() -> None:
        raise IntegrityError("INSERT INTO users", {}, Exception("duplicate key"))

    # The server error middleware re-raises after responding
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestErrorShape:
    """Every failure uses {"error": ..., "code": ...}."""

    async def test__unknown_route(self, client: AsyncClient) -> None:
        response = await client.get("/nope")
        assert response.status_code == 404
        assert response.json() == {"error": "Not Found", "code": "NOT_FOUND"}

    async def test__wrong_method(self, client: AsyncClient) -> None:
        response = await client.put("/auth/me")
        assert response.status_code == 405
        assert response.json()["code"] == "METHOD_NOT_ALLOWED"

    async def test__malformed_json(self, client: AsyncClient) -> None:
        response = await client.post(
            "/users", content="{not json", headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test__unhandled_exception_is_opaque(
        self,
        failing_client: AsyncClient,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.ERROR, logger="api.errors"):
            response = await failing_client.get("/boom")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "code": "INTERNAL"}
        assert "hunter2" not in response.text
        assert "unhandled_exception" in caplog.text

    async def test__unmapped_integrity_error(self, failing_client: AsyncClient) -> None:
        response = await failing_client.get("/duplicate")
        assert response.status_code == 409
        assert response.json() == {
            "error": "Unique constraint violation",
            "code": "UNIQUE_CONSTRAINT",
        }


class TestResponseHeaders:
    """Headers added by middleware and the rate limit handler."""

    async def test__security_headers(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "max-age" in response.headers["Strict-Transport-Security"]

    async def test__rate_limit_fails_open_without_redis(
        self,
        client: AsyncClient,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setitem(
            rate_limit_config.RATE_LIMITS,
            RateLimitedRoute.VERIFICATION_STATUS,
            RateLimitConfig(1, 60, "Polling too frequently."),
        )
        for _ in range(3):
            response = await client.get(
                "/users/verification-status", params={"username": "ghost"},
            )
            assert response.status_code == 200

    async def test__rate_limited_polling(
        self,
        client: AsyncClient,
        redis_client: RedisClient,  # noqa: ARG002
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setitem(
            rate_limit_config.RATE_LIMITS,
            RateLimitedRoute.VERIFICATION_STATUS,
            RateLimitConfig(1, 60, "Polling too frequently."),
        )
        params = {"username": "ghost"}
        ok = await client.get("/users/verification-status", params=params)

        limited = await client.get("/users/verification-status", params=params)

        assert ok.status_code == 200
        assert "X-RateLimit-Reset" in ok.headers
        assert limited.status_code == 429
        assert limited.json() == {"error": "Polling too frequently.", "code": "RATE_LIMITED"}
        assert 0 < int(limited.headers["Retry-After"]) <= 60

    async def test__rate_limits_are_per_route(
        self,
        client: AsyncClient,
        redis_client: RedisClient,  # noqa: ARG002
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setitem(
            rate_limit_config.RATE_LIMITS,
            RateLimitedRoute.VERIFICATION_STATUS,
            RateLimitConfig(1, 60, "Polling too frequently."),
        )
        await client.get("/users/verification-status", params={"username": "ghost"})

        response = await client.post(
            "/auth/resend-verification", json={"email": "ghost@example.com"},
        )

        assert response.status_code == 202
