from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from os import getenv


def _env_bool(name: str) -> bool | None:
    raw = getenv(name)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return None


def parse_token_table(raw: str | None) -> dict[str, tuple[str, str]]:
    """Parse ``token:user_id:role`` entries separated by commas."""
    table: dict[str, tuple[str, str]] = {}
    if not raw:
        return table
    for entry in raw.split(","):
        parts = [part.strip() for part in entry.strip().split(":")]
        if len(parts) != 3 or not all(parts):
            continue
        token, user_id, role = parts
        table[token] = (user_id, role)
    return table


@dataclass(frozen=True)
class Settings:
    debug: bool = False
    auth_mode: str = "token"
    auth_tokens: dict[str, tuple[str, str]] = field(default_factory=dict)
    auth_user_header: str = "X-User-Id"
    auth_role_header: str = "X-User-Role"

    # Local worker simulation
    simulated_records: int = 500
    simulated_delay_ms: int = 0

    @classmethod
    def from_env(cls) -> Settings:
        debug = _env_bool("COLLECTION_DEBUG")
        return cls(
            debug=bool(debug),
            auth_mode=getenv("COLLECTION_AUTH_MODE", "token").strip().lower(),
            auth_tokens=parse_token_table(getenv("COLLECTION_AUTH_TOKENS")),
            auth_user_header=getenv("COLLECTION_AUTH_USER_HEADER", "X-User-Id"),
            auth_role_header=getenv("COLLECTION_AUTH_ROLE_HEADER", "X-User-Role"),
            simulated_records=int(getenv("COLLECTION_SIMULATED_RECORDS", "500")),
            simulated_delay_ms=int(getenv("COLLECTION_SIMULATED_DELAY_MS", "0")),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
