"""Tests for user registration, login and account endpoints."""
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from core import rate_limit_config
from core.config import Settings
from core.rate_limit_config import RateLimitConfig, RateLimitedRoute
from core.redis import RedisClient
from models.user import User
from tests.api.conftest import FAKE_UUID, PASSWORD, bearer, create_user
from tests.conftest import RecordingEmailSender

SENSITIVE_FIELDS = {"passwordHash", "emailVerificationToken", "emailVerificationSentAt"}


class TestRegister:
    """Tests for POST /users."""

    async def test__register__without_email_returns_user(self, client: AsyncClient) -> None:
        response = await client.post(
            "/users", json={"username": "demo", "password": "secret123"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["pendingVerification"] is False
        assert body["user"]["username"] == "demo"
        assert body["user"]["emailVerifiedAt"] is None
        assert SENSITIVE_FIELDS.isdisjoint(body["user"])

    async def test__register__with_email_is_pending(
        self,
        client: AsyncClient,
        email_sender: RecordingEmailSender,
    ) -> None:
        response = await client.post(
            "/users",
            json={"username": "demo2", "email": "d2@example.com", "password": "secret123"},
        )

        assert response.status_code == 202
        assert response.json() == {"pendingVerification": True}
        assert email_sender.last.to_address == "d2@example.com"

    async def test__register__email_failure_still_succeeds(
        self,
        client: AsyncClient,
        email_sender: RecordingEmailSender,
    ) -> None:
        email_sender.error = TimeoutError("smtp slow")
        response = await client.post(
            "/users",
            json={"username": "demo3", "email": "d3@example.com", "password": "secret123"},
        )
        assert response.status_code == 202

    async def test__register__missing_password(self, client: AsyncClient) -> None:
        response = await client.post("/users", json={"username": "demo"})

        assert response.status_code == 400
        assert response.json() == {
            "error": "username and password required",
            "code": "VALIDATION_ERROR",
        }

    async def test__register__invalid_email(self, client: AsyncClient) -> None:
        response = await client.post(
            "/users",
            json={"username": "demo", "email": "not-an-email", "password": "secret123"},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test__register__duplicate_username(self, client: AsyncClient) -> None:
        payload = {"username": "demo", "password": "secret123"}
        await client.post("/users", json=payload)

        response = await client.post("/users", json=payload)

        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    async def test__register__rate_limited(
        self,
        client: AsyncClient,
        redis_client: RedisClient,  # noqa: ARG002
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setitem(
            rate_limit_config.RATE_LIMITS,
            RateLimitedRoute.REGISTER,
            RateLimitConfig(2, 900, "Too many registrations from this IP, please try again later."),
        )
        first = await client.post("/users", json={"username": "r1", "password": "secret123"})
        await client.post("/users", json={"username": "r2", "password": "secret123"})

        response = await client.post("/users", json={"username": "r3", "password": "secret123"})

        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert response.status_code == 429
        assert response.json() == {
            "error": "Too many registrations from this IP, please try again later.",
            "code": "RATE_LIMITED",
        }
        assert int(response.headers["Retry-After"]) > 0
        assert response.headers["X-RateLimit-Remaining"] == "0"
        # The refused request never reached registration
        status = await client.get("/users/verification-status", params={"username": "r3"})
        assert status.json() == {"exists": False, "verified": False}


class TestLogin:
    """Tests for POST /users/login."""

    async def test__login__returns_user_and_token(
        self,
        client: AsyncClient,
        user: User,
    ) -> None:
        response = await client.post(
            "/users/login", json={"username": "demo", "password": PASSWORD},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["user"]["id"] == str(user.id)
        assert SENSITIVE_FIELDS.isdisjoint(body["user"])

        me = await client.get("/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
        assert me.json()["username"] == "demo"

    async def test__login__by_identifier_email(self, client: AsyncClient, user: User) -> None:  # noqa: ARG002
        response = await client.post(
            "/users/login", json={"identifier": "demo@example.com", "password": PASSWORD},
        )
        assert response.status_code == 200

    async def test__login__wrong_password(self, client: AsyncClient, user: User) -> None:  # noqa: ARG002
        response = await client.post(
            "/users/login", json={"username": "demo", "password": "wrong-pass"},
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid credentials", "code": "UNAUTHORIZED"}
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test__login__unknown_user_same_response(self, client: AsyncClient) -> None:
        response = await client.post(
            "/users/login", json={"username": "nobody", "password": PASSWORD},
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid credentials", "code": "UNAUTHORIZED"}

    async def test__login__unverified_email(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
    ) -> None:
        await create_user(db_session, "pending", email="p@example.com", verified=False)

        response = await client.post(
            "/users/login", json={"username": "pending", "password": PASSWORD},
        )

        assert response.status_code == 403
        assert response.json() == {"error": "Email not verified", "code": "EMAIL_NOT_VERIFIED"}

    async def test__login__missing_identifier(self, client: AsyncClient) -> None:
        response = await client.post("/users/login", json={"password": PASSWORD})
        assert response.status_code == 400
        assert response.json()["error"] == "identifier and password required"


class TestRegistrationFlow:
    """End-to-end register, verify, login."""

    async def test__register_verify_login(
        self,
        client: AsyncClient,
        email_sender: RecordingEmailSender,
    ) -> None:
        await client.post(
            "/users",
            json={"username": "demo2", "email": "d2@example.com", "password": "secret123"},
        )
        login_payload = {"username": "demo2", "password": "secret123"}
        assert (await client.post("/users/login", json=login_payload)).status_code == 403

        status = await client.get("/users/verification-status", params={"username": "demo2"})
        assert status.json() == {"exists": True, "verified": False}

        verify = await client.get(
            "/auth/verify-email", params={"token": email_sender.last.token, "mode": "json"},
        )
        assert verify.status_code == 200

        status = await client.get("/users/verification-status", params={"username": "demo2"})
        assert status.json() == {"exists": True, "verified": True}
        response = await client.post("/users/login", json=login_payload)
        assert response.status_code == 200
        assert response.json()["user"]["emailVerifiedAt"] is not None

    async def test__login_with_address_as_typed_at_registration(
        self,
        client: AsyncClient,
        email_sender: RecordingEmailSender,
    ) -> None:
        typed = "Demo2@Example.COM"
        await client.post(
            "/users", json={"username": "demo2", "email": typed, "password": "secret123"},
        )
        await client.get(
            "/auth/verify-email", params={"token": email_sender.last.token, "mode": "json"},
        )

        by_identifier = await client.post(
            "/users/login", json={"identifier": typed, "password": "secret123"},
        )
        by_email = await client.post("/users/login", json={"email": typed, "password": "secret123"})

        assert by_identifier.status_code == by_email.status_code == 200
        assert by_identifier.json()["user"]["email"] == "Demo2@example.com"


class TestReadUsers:
    """Tests for GET /users, /users/verification-status and /users/{id}."""

    async def test__list_users__take(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
    ) -> None:
        for i in range(3):
            await create_user(db_session, f"user_{i}")

        response = await client.get("/users", params={"take": 2})

        assert response.status_code == 200
        assert len(response.json()) == 2
        assert all(SENSITIVE_FIELDS.isdisjoint(u) for u in response.json())

    async def test__verification_status__unknown_user(self, client: AsyncClient) -> None:
        response = await client.get("/users/verification-status", params={"username": "ghost"})
        assert response.json() == {"exists": False, "verified": False}

    async def test__verification_status__requires_username(self, client: AsyncClient) -> None:
        response = await client.get("/users/verification-status")
        assert response.status_code == 400
        assert response.json() == {"error": "username required", "code": "VALIDATION_ERROR"}

    async def test__get_user(self, client: AsyncClient, user: User) -> None:
        response = await client.get(f"/users/{user.id}")
        assert response.status_code == 200
        assert response.json()["email"] == "demo@example.com"

    async def test__get_user__not_found(self, client: AsyncClient) -> None:
        response = await client.get(f"/users/{FAKE_UUID}")
        assert response.status_code == 404
        assert response.json() == {"error": "Not found", "code": "NOT_FOUND"}

    async def test__get_user__malformed_id(self, client: AsyncClient) -> None:
        response = await client.get("/users/not-a-uuid")
        assert response.status_code == 400


class TestUpdateUser:
    """Tests for PATCH /users/{id}."""

    async def test__update_user__new_email_requires_verification(
        self,
        client: AsyncClient,
        user: User,
        auth_headers: dict[str, str],
        email_sender: RecordingEmailSender,
    ) -> None:
        response = await client.patch(
            f"/users/{user.id}", json={"email": "new@example.com"}, headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["email"] == "new@example.com"
        assert response.json()["emailVerifiedAt"] is None
        assert email_sender.last.to_address == "new@example.com"

    async def test__update_user__null_email_clears_it(
        self,
        client: AsyncClient,
        user: User,
        auth_headers: dict[str, str],
    ) -> None:
        response = await client.patch(
            f"/users/{user.id}", json={"email": None}, headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["email"] is None

    async def test__update_user__empty_body(
        self,
        client: AsyncClient,
        user: User,
        auth_headers: dict[str, str],
    ) -> None:
        response = await client.patch(f"/users/{user.id}", json={}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json() == {"error": "No updatable fields", "code": "VALIDATION_ERROR"}

    async def test__update_user__requires_token(self, client: AsyncClient, user: User) -> None:
        response = await client.patch(f"/users/{user.id}", json={"password": "new-secret"})
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    async def test__update_user__other_account_is_not_found(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers: dict[str, str],
    ) -> None:
        other = await create_user(db_session, "other")
        response = await client.patch(
            f"/users/{other.id}", json={"password": "hijacked"}, headers=auth_headers,
        )
        assert response.status_code == 404


class TestDeleteUser:
    """Tests for DELETE /users/{id}."""

    async def test__delete_user(
        self,
        client: AsyncClient,
        user: User,
        auth_headers: dict[str, str],
    ) -> None:
        response = await client.delete(f"/users/{user.id}", headers=auth_headers)

        assert response.status_code == 204
        assert (await client.get(f"/users/{user.id}")).status_code == 404

    async def test__delete_user__other_account_is_not_found(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        settings: Settings,
        user: User,
    ) -> None:
        other = await create_user(db_session, "other")
        response = await client.delete(f"/users/{user.id}", headers=bearer(other, settings))
        assert response.status_code == 404
