"""
Tracker configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import find_dotenv, load_dotenv

DEFAULT_SERVICES: tuple[str, ...] = ("directory", "course-builder", "assessment")

KNOWN_SERVICES: tuple[str, ...] = (
    "directory",
    "course-builder",
    "content-studio",
    "assessment",
    "skills-engine",
    "learner-ai",
    "devlab",
    "rag-assistant",
)

DEFAULT_ESTIMATED_DURATION = "5-10 minutes"


def _csv(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass
class TrackerConfig:
    """
    Configuration for the collection job tracker.

    Can be loaded from environment variables or constructed
    programmatically (tests build it directly).
    """

    default_services: tuple[str, ...] = DEFAULT_SERVICES
    known_services: tuple[str, ...] = KNOWN_SERVICES
    admin_roles: frozenset[str] = field(default_factory=lambda: frozenset({"org_admin"}))
    estimated_duration: str = DEFAULT_ESTIMATED_DURATION
    job_id_prefix: str = "collection"

    # Local dispatcher
    max_concurrent_jobs: int = 8

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.default_services = tuple(self.default_services)
        self.known_services = tuple(self.known_services)
        self.admin_roles = frozenset(self.admin_roles)
        if not self.default_services:
            raise ValueError("default_services must not be empty")
        unknown = [s for s in self.default_services if s not in self.known_services]
        if unknown:
            raise ValueError(f"default_services not in known_services: {unknown}")
        if self.max_concurrent_jobs < 1:
            raise ValueError("max_concurrent_jobs must be at least 1")
        if not self.job_id_prefix or not self.job_id_prefix.replace("-", "").isalnum():
            raise ValueError(f"Invalid job_id_prefix: {self.job_id_prefix!r}")
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        self.log_level = self.log_level.upper()
        if self.log_level not in valid_levels:
            raise ValueError(f"Invalid log level: {self.log_level}. Must be one of {valid_levels}")
        valid_formats = ("text", "json")
        if self.log_format not in valid_formats:
            raise ValueError(f"Invalid log format: {self.log_format}. Must be one of {valid_formats}")

    @classmethod
    def from_env(cls, prefix: str = "COLLECTION_") -> TrackerConfig:
        """
        Load configuration from environment variables.

        Example:
            COLLECTION_DEFAULT_SERVICES=directory,assessment
            COLLECTION_ADMIN_ROLES=org_admin,platform_admin
            COLLECTION_LOG_FORMAT=text
        """
        kwargs: dict = {}

        if services := os.getenv(f"{prefix}DEFAULT_SERVICES"):
            kwargs["default_services"] = _csv(services)
        if known := os.getenv(f"{prefix}KNOWN_SERVICES"):
            kwargs["known_services"] = _csv(known)
        if roles := os.getenv(f"{prefix}ADMIN_ROLES"):
            kwargs["admin_roles"] = frozenset(_csv(roles))
        if duration := os.getenv(f"{prefix}ESTIMATED_DURATION"):
            kwargs["estimated_duration"] = duration
        if id_prefix := os.getenv(f"{prefix}JOB_ID_PREFIX"):
            kwargs["job_id_prefix"] = id_prefix
        if max_jobs := os.getenv(f"{prefix}MAX_CONCURRENT_JOBS"):
            kwargs["max_concurrent_jobs"] = int(max_jobs)
        if level := os.getenv(f"{prefix}LOG_LEVEL"):
            kwargs["log_level"] = level.upper()
        if log_format := os.getenv(f"{prefix}LOG_FORMAT"):
            kwargs["log_format"] = log_format.lower()

        return cls(**kwargs)


def load_env(path: str | None = None, *, override: bool = False) -> bool:
    """
    Load environment variables from a .env file.

    Args:
        path: Optional path to a .env file. If not provided, uses find_dotenv().
        override: Whether to override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    env_path = path or find_dotenv(usecwd=True)
    if not env_path:
        return False
    return load_dotenv(env_path, override=override)


__all__ = [
    "TrackerConfig",
    "DEFAULT_SERVICES",
    "KNOWN_SERVICES",
    "DEFAULT_ESTIMATED_DURATION",
    "load_env",
]
