"""CommitDAO — commits table operations."""

from __future__ import annotations

import re

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pkgtrail.core.git import CommitRef, GitRepository
from pkgtrail.dao.base import BaseDAO
from pkgtrail.models.commit import Commit

_SHA_PREFIX_RE = re.compile(r"^[0-9a-fA-F]{4,40}$")


class CommitDAO(BaseDAO[Commit]):
    model = Commit

    # ── read ──────────────────────────────────────────────────────────────

    async def get_by_sha(self, session: AsyncSession, sha: str) -> Commit | None:
        return await self.get_by_field(session, sha=sha)

    async def find_by_prefix(self, session: AsyncSession, prefix: str) -> Commit | None:
        """Return the earliest commit whose sha starts with *prefix*."""
        if not _SHA_PREFIX_RE.match(prefix):
            return None
        stmt = (
            select(Commit)
            .where(Commit.sha.startswith(prefix.lower(), autoescape=True))
            .order_by(Commit.committed_at, Commit.id)
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    # ── write ─────────────────────────────────────────────────────────────

    async def upsert_from_ref(self, session: AsyncSession, ref: CommitRef) -> Commit:
        """Find the commit by sha, creating it from *ref* if missing.

        Commits are immutable once recorded: an existing row is returned
        untouched.
        """
        await self.insert_ignore(
            session,
            [
                {
                    "sha": ref.sha,
                    "message": ref.message,
                    "author_name": ref.author_name,
                    "author_email": ref.author_email,
                    "committed_at": ref.committed_at,
                    "has_dependency_changes": False,
                }
            ],
            index_elements=["sha"],
        )
        commit = await self.get_by_sha(session, ref.sha)
        if commit is None:  # pragma: no cover - insert above guarantees a row
            raise RuntimeError(f"commit {ref.sha} vanished after upsert")
        return commit

    async def mark_has_changes(self, session: AsyncSession, commit_id: int) -> None:
        self._require_pk(commit_id)
        stmt = update(Commit).where(Commit.id == commit_id).values(has_dependency_changes=True)
        await session.execute(stmt)

    async def find_or_create_from_repo(
        self, session: AsyncSession, repo: GitRepository, ref: str
    ) -> Commit | None:
        """Resolve *ref* to a stored commit, recording it if git knows it.

        Lookup order: exact sha, sha prefix, then git (branch, tag, HEAD, ...).
        A commit created here is marked as having no dependency changes.
        Returns None when the reference cannot be resolved.
        """
        commit = await self.get_by_sha(session, ref) or await self.find_by_prefix(session, ref)
        if commit is not None:
            return commit

        git_commit = await repo.resolve(ref)
        if git_commit is None:
            return None
        return await self.upsert_from_ref(session, git_commit)
