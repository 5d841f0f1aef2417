from __future__ import annotations

import pytest

pytest.importorskip("httpx")
from fastapi.testclient import TestClient
from starlette.requests import Request

from collection_api.app import create_app
from collection_api.auth import (
    AuthResult,
    BearerTokenAuthAdapter,
    HeaderAuthAdapter,
    build_auth_adapter,
)
from collection_api.settings import Settings, get_settings, parse_token_table

PREFIX = "/v1/data-collection"


def _request(headers: dict[str, str] | None = None) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


class TestBearerTokenAuthAdapter:
    @pytest.mark.asyncio
    async def test_known_token(self) -> None:
        adapter = BearerTokenAuthAdapter(tokens={"tok": ("u1", "org_admin")})

        result = await adapter.authenticate(request=_request({"Authorization": "Bearer tok"}))

        assert result == AuthResult(ok=True, caller_id="u1", role="org_admin")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Basic abc"}, {"Authorization": "Bearer "}])
    async def test_missing_token(self, headers) -> None:
        result = await BearerTokenAuthAdapter(tokens={}).authenticate(request=_request(headers))

        assert not result.ok
        assert result.status_code == 401
        assert result.code == "MISSING_TOKEN"

    @pytest.mark.asyncio
    async def test_unknown_token(self) -> None:
        adapter = BearerTokenAuthAdapter(tokens={"tok": ("u1", "learner")})

        result = await adapter.authenticate(request=_request({"Authorization": "Bearer nope"}))

        assert not result.ok
        assert result.status_code == 403
        assert result.code == "INVALID_TOKEN"


class TestHeaderAuthAdapter:
    @pytest.mark.asyncio
    async def test_identity_from_headers(self) -> None:
        result = await HeaderAuthAdapter().authenticate(
            request=_request({"X-User-Id": "u1", "X-User-Role": "org_admin"})
        )

        assert result.ok
        assert (result.caller_id, result.role) == ("u1", "org_admin")

    @pytest.mark.asyncio
    async def test_role_is_optional(self) -> None:
        result = await HeaderAuthAdapter().authenticate(request=_request({"X-User-Id": "u1"}))

        assert result.ok
        assert result.role is None

    @pytest.mark.asyncio
    async def test_missing_user_header(self) -> None:
        result = await HeaderAuthAdapter().authenticate(request=_request({"X-User-Role": "org_admin"}))

        assert not result.ok
        assert result.status_code == 401

    @pytest.mark.asyncio
    async def test_malformed_user_header(self) -> None:
        result = await HeaderAuthAdapter().authenticate(request=_request({"X-User-Id": "u1/../admin"}))

        assert not result.ok
        assert result.status_code == 403

    @pytest.mark.asyncio
    async def test_custom_header_names(self) -> None:
        adapter = HeaderAuthAdapter(user_header="X-Principal", role_header="X-Principal-Role")

        result = await adapter.authenticate(request=_request({"X-Principal": "u9"}))

        assert result.caller_id == "u9"


class TestSettings:
    def test_parse_token_table(self) -> None:
        table = parse_token_table("a:u1:learner, b:u2:org_admin,broken,:u3:x")

        assert table == {"a": ("u1", "learner"), "b": ("u2", "org_admin")}

    def test_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("COLLECTION_DEBUG", "yes")
        monkeypatch.setenv("COLLECTION_AUTH_MODE", "Header")
        monkeypatch.setenv("COLLECTION_AUTH_TOKENS", "t:u1:learner")
        monkeypatch.setenv("COLLECTION_SIMULATED_RECORDS", "42")
        monkeypatch.setenv("COLLECTION_SIMULATED_DELAY_MS", "5")

        settings = Settings.from_env()

        assert settings.debug is True
        assert settings.auth_mode == "header"
        assert settings.auth_tokens == {"t": ("u1", "learner")}
        assert settings.simulated_records == 42
        assert settings.simulated_delay_ms == 5

    def test_get_settings_is_cached(self) -> None:
        get_settings.cache_clear()

        assert get_settings() is get_settings()
        get_settings.cache_clear()

    def test_build_auth_adapter(self) -> None:
        assert isinstance(build_auth_adapter(Settings(auth_mode="header")), HeaderAuthAdapter)
        assert isinstance(build_auth_adapter(Settings(auth_mode="token")), BearerTokenAuthAdapter)
        with pytest.raises(ValueError):
            build_auth_adapter(Settings(auth_mode="magic"))


class TestAuthOnRoutes:
    """Credentials are checked before any route logic runs."""

    @pytest.fixture
    def client(self, manager):
        app = create_app(
            tracker=manager,
            settings=Settings(auth_tokens={"tok-u1": ("u1", "learner")}),
        )
        with TestClient(app) as client:
            yield client

    def test_missing_token_is_401(self, client) -> None:
        response = client.post(f"{PREFIX}/trigger", json={"user_id": "u1", "collection_type": "full"})

        assert response.status_code == 401
        assert response.json() == {"error": "Access token required", "code": "MISSING_TOKEN"}

    def test_invalid_token_is_403(self, client) -> None:
        response = client.get(
            f"{PREFIX}/collection-1/status",
            headers={"Authorization": "Bearer forged"},
        )

        assert response.status_code == 403
        assert response.json() == {"error": "Invalid token", "code": "INVALID_TOKEN"}

    def test_valid_token_reaches_tracker(self, client) -> None:
        response = client.post(
            f"{PREFIX}/trigger",
            json={"user_id": "u1", "collection_type": "incremental"},
            headers={"Authorization": "Bearer tok-u1"},
        )

        assert response.status_code == 202

    def test_shutdown_stops_dispatcher(self, manager, dispatcher) -> None:
        app = create_app(tracker=manager, settings=Settings())
        with TestClient(app):
            pass

        assert dispatcher.shutdown_called

    def test_header_mode(self, manager) -> None:
        app = create_app(tracker=manager, settings=Settings(auth_mode="header"))
        with TestClient(app) as client:
            response = client.post(
                f"{PREFIX}/trigger",
                json={"user_id": "u1", "collection_type": "targeted", "services": ["devlab"]},
                headers={"X-User-Id": "u1"},
            )

        assert response.status_code == 202
