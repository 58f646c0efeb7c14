"""Shared fixtures for pkgtrail tests.

Database tests run against an in-memory SQLite engine created per test.
History tests build real git repositories under ``tmp_path`` with fixed,
strictly increasing commit dates.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

import pytest
import pytest_asyncio

from pkgtrail.core.database import Database
from pkgtrail.core.git import GitRepository

_BASE_TIMESTAMP = 1_700_000_000


class GitRepoBuilder:
    """Create commits in a scratch repository with deterministic metadata."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._tick = 0
        path.mkdir(parents=True, exist_ok=True)
        self.git("init", "--quiet", "--initial-branch=main")

    def _env(self, timestamp: int) -> dict[str, str]:
        date = f"@{timestamp} +0000"
        return {
            **os.environ,
            "GIT_AUTHOR_NAME": "Test Author",
            "GIT_AUTHOR_EMAIL": "author@example.com",
            "GIT_COMMITTER_NAME": "Test Author",
            "GIT_COMMITTER_EMAIL": "author@example.com",
            "GIT_AUTHOR_DATE": date,
            "GIT_COMMITTER_DATE": date,
            "GIT_CONFIG_NOSYSTEM": "1",
            "HOME": str(self.path),
        }

    def git(self, *args: str, timestamp: int | None = None) -> str:
        ts = timestamp if timestamp is not None else _BASE_TIMESTAMP + self._tick * 60
        result = subprocess.run(
            ["git", "-c", "commit.gpgsign=false", *args],
            cwd=self.path,
            env=self._env(ts),
            check=True,
            capture_output=True,
            text=True,
        )
        return result.stdout.strip()

    def commit(
        self,
        message: str,
        files: dict[str, str | None] | None = None,
        *,
        timestamp: int | None = None,
    ) -> str:
        """Write (or delete, for None) *files* and commit. Returns the new sha."""
        for rel, content in (files or {}).items():
            target = self.path / rel
            if content is None:
                target.unlink()
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        self._tick += 1
        self.git("add", "--all")
        self.git("commit", "--quiet", "--allow-empty", "-m", message, timestamp=timestamp)
        return self.head()

    def merge(self, branch: str, message: str) -> str:
        self._tick += 1
        self.git("merge", "--quiet", "--no-ff", "-m", message, branch)
        return self.head()

    def checkout(self, branch: str, *, create: bool = False) -> None:
        if create:
            self.git("checkout", "--quiet", "-b", branch)
        else:
            self.git("checkout", "--quiet", branch)

    def head(self) -> str:
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def git_repo(tmp_path) -> GitRepoBuilder:
    if shutil.which("git") is None:
        pytest.skip("git executable not found")
    return GitRepoBuilder(tmp_path / "repo")


@pytest.fixture
def repository(git_repo) -> GitRepository:
    return GitRepository(git_repo.path)


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database with the full schema."""
    database = Database("sqlite+aiosqlite:///:memory:")
    await database.create_all()
    yield database
    await database.dispose()


@pytest_asyncio.fixture
async def session(db):
    async with db.session_factory() as sess:
        yield sess
