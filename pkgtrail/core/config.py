"""Runtime settings read from ``PKGTRAIL_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

DEFAULT_REGISTRY_URL = "https://packages.ecosyste.ms/api/v1"
DATABASE_FILENAME = "pkgtrail.sqlite3"


def _env_int(key: str, default: int) -> int:
    return int(os.environ.get(key, default))


def _env_float(key: str, default: float) -> float:
    return float(os.environ.get(key, default))


def default_database_url(git_dir: Path) -> str:
    """SQLite database stored inside the repository's git directory."""
    return f"sqlite+aiosqlite:///{Path(git_dir) / DATABASE_FILENAME}"


@dataclass(frozen=True)
class Settings:
    """Resolved configuration.

    ``database_url`` is None until a repository is known; callers fill it
    in with :func:`default_database_url` or :meth:`with_overrides`.
    """

    database_url: str | None = None
    log_level: str = "INFO"
    log_format: str = "console"
    checkpoint_interval: int = 50
    registry_url: str = DEFAULT_REGISTRY_URL
    registry_timeout: float = 30.0
    registry_stale_seconds: int = 86400

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            database_url=os.environ.get("PKGTRAIL_DATABASE_URL") or None,
            log_level=os.environ.get("PKGTRAIL_LOG_LEVEL", "INFO").upper(),
            log_format=os.environ.get("PKGTRAIL_LOG_FORMAT", "console").lower(),
            checkpoint_interval=_env_int("PKGTRAIL_CHECKPOINT_INTERVAL", 50),
            registry_url=os.environ.get("PKGTRAIL_REGISTRY_URL", DEFAULT_REGISTRY_URL),
            registry_timeout=_env_float("PKGTRAIL_REGISTRY_TIMEOUT", 30.0),
            registry_stale_seconds=_env_int("PKGTRAIL_REGISTRY_STALE_SECONDS", 86400),
        )

    def with_overrides(self, **values) -> Settings:
        """Return a copy with every non-None value in *values* applied."""
        return replace(self, **{k: v for k, v in values.items() if v is not None})

    def resolve_database_url(self, git_dir: Path) -> str:
        return self.database_url or default_database_url(git_dir)
