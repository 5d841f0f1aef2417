from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from fastapi import Request

from collection_runtime.jobs.types import ID_PATTERN


@dataclass(frozen=True)
class AuthResult:
    ok: bool
    caller_id: str | None = None
    role: str | None = None
    reason: str | None = None
    code: str | None = None
    status_code: int = 401


class AuthAdapter:
    """Turns an HTTP request into a verified ``(caller_id, role)`` pair."""

    async def authenticate(self, *, request: Request) -> AuthResult:
        raise NotImplementedError


class BearerTokenAuthAdapter(AuthAdapter):
    """Looks up ``Authorization: Bearer <token>`` in a token table."""

    def __init__(self, *, tokens: Mapping[str, tuple[str, str]]) -> None:
        self._tokens = dict(tokens)

    async def authenticate(self, *, request: Request) -> AuthResult:
        token = _extract_bearer_token(request)
        if not token:
            return AuthResult(ok=False, reason="Access token required", code="MISSING_TOKEN", status_code=401)

        identity = self._tokens.get(token)
        if identity is None:
            return AuthResult(ok=False, reason="Invalid token", code="INVALID_TOKEN", status_code=403)

        caller_id, role = identity
        return AuthResult(ok=True, caller_id=caller_id, role=role)


class HeaderAuthAdapter(AuthAdapter):
    """Trusts identity headers set by an upstream gateway."""

    def __init__(self, *, user_header: str = "X-User-Id", role_header: str = "X-User-Role") -> None:
        self._user_header = user_header
        self._role_header = role_header

    async def authenticate(self, *, request: Request) -> AuthResult:
        caller_id = (request.headers.get(self._user_header) or "").strip()
        if not caller_id:
            return AuthResult(ok=False, reason="Access token required", code="MISSING_TOKEN", status_code=401)
        if not ID_PATTERN.fullmatch(caller_id):
            return AuthResult(ok=False, reason="Invalid token", code="INVALID_TOKEN", status_code=403)

        role = (request.headers.get(self._role_header) or "").strip() or None
        return AuthResult(ok=True, caller_id=caller_id, role=role)


def build_auth_adapter(settings) -> AuthAdapter:
    if settings.auth_mode == "header":
        return HeaderAuthAdapter(
            user_header=settings.auth_user_header,
            role_header=settings.auth_role_header,
        )
    if settings.auth_mode == "token":
        return BearerTokenAuthAdapter(tokens=settings.auth_tokens)
    raise ValueError(f"Unknown auth mode: {settings.auth_mode!r}")


def _extract_bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None
