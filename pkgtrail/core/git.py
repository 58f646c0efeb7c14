"""Source control reader — async wrapper around the git executable.

Every query shells out to ``git -C <path> ...`` through asyncio subprocesses
and parses NUL-delimited output, so paths with spaces or newlines survive.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

# Field separator is ASCII unit separator; records end in NUL (git log -z).
_LOG_FORMAT = "%H%x1f%P%x1f%an%x1f%ae%x1f%ct%x1f%B"
_READ_CHUNK = 64 * 1024

_STATUS_MAP = {"A": "added", "D": "deleted"}


class GitError(RuntimeError):
    """A git command exited with a non-zero status."""


@dataclass(frozen=True)
class CommitRef:
    """One commit as reported by git."""

    sha: str
    parents: tuple[str, ...]
    author_name: str
    author_email: str
    committed_at: datetime
    message: str

    @property
    def short_sha(self) -> str:
        return self.sha[:7]

    @property
    def parent_count(self) -> int:
        return len(self.parents)

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1


@dataclass(frozen=True)
class ChangedPath:
    path: str
    status: str  # added | modified | deleted


def _parse_commit(record: bytes) -> CommitRef:
    text = record.decode("utf-8", errors="replace").lstrip("\n")
    sha, parents, name, email, ts, message = text.split("\x1f", 5)
    return CommitRef(
        sha=sha,
        parents=tuple(parents.split()),
        author_name=name,
        author_email=email,
        committed_at=datetime.fromtimestamp(int(ts), tz=timezone.utc),
        message=message.strip(),
    )


class GitRepository:
    """Read-only access to a local git repository."""

    def __init__(self, path: str | Path = ".") -> None:
        self.path = Path(path).resolve()

    def _cmd(self, args: list[str]) -> list[str]:
        return ["git", "-C", str(self.path), *args]

    async def _run(self, args: list[str], *, check: bool = True) -> tuple[int, bytes]:
        """Run a git command and return ``(returncode, stdout)``.

        Raises :class:`GitError` on non-zero exit when *check* is true.
        """
        proc = await asyncio.create_subprocess_exec(
            *self._cmd(args),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        if check and proc.returncode != 0:
            raise GitError(
                f"git {args[0]} failed (exit {proc.returncode}): "
                f"{stderr.decode(errors='replace').strip()}"
            )
        return proc.returncode, stdout

    # ── refs ──────────────────────────────────────────────────────────────

    async def git_dir(self) -> Path:
        _, out = await self._run(["rev-parse", "--absolute-git-dir"])
        return Path(out.decode().strip())

    async def resolve(self, ref: str) -> CommitRef | None:
        """Resolve a sha (full or abbreviated), branch, or tag to a commit.

        Returns None when git cannot resolve *ref*.
        """
        if not ref or ref.startswith("-"):
            return None
        code, out = await self._run(
            ["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], check=False
        )
        if code != 0:
            return None
        return await self._commit_info(out.decode().strip())

    async def head_commit(self) -> CommitRef:
        commit = await self.resolve("HEAD")
        if commit is None:
            raise GitError("HEAD does not point at a commit")
        return commit

    async def default_branch(self) -> str:
        """Branch HEAD points at, else ``main``/``master`` if present."""
        code, out = await self._run(["symbolic-ref", "--quiet", "--short", "HEAD"], check=False)
        if code == 0 and out.strip():
            return out.decode().strip()
        for candidate in ("main", "master"):
            if await self.branch_exists(candidate):
                return candidate
        return "main"

    async def branch_exists(self, name: str) -> bool:
        if not name or name.startswith("-"):
            return False
        code, _ = await self._run(
            ["rev-parse", "--verify", "--quiet", f"refs/heads/{name}"], check=False
        )
        return code == 0

    async def _commit_info(self, sha: str) -> CommitRef:
        _, out = await self._run(["log", "-1", "-z", f"--format={_LOG_FORMAT}", sha, "--"])
        return _parse_commit(out.rstrip(b"\0"))

    # ── history ───────────────────────────────────────────────────────────

    async def commits_on_branch(
        self, name: str, since: str | None = None
    ) -> AsyncIterator[CommitRef]:
        """Yield the first-parent chain of *name*, oldest first.

        When *since* is given, that commit and everything reachable from it
        are excluded, so a walk resumes right after the last analyzed commit.
        Calling again restarts from the beginning.
        """
        rev = f"{since}..{name}" if since else name
        args = [
            "log", "--first-parent", "--topo-order", "--reverse", "-z",
            f"--format={_LOG_FORMAT}", rev, "--",
        ]
        proc = await asyncio.create_subprocess_exec(
            *self._cmd(args),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        buffer = b""
        try:
            while True:
                chunk = await proc.stdout.read(_READ_CHUNK)
                if not chunk:
                    break
                buffer += chunk
                *records, buffer = buffer.split(b"\0")
                for record in records:
                    if record.strip():
                        yield _parse_commit(record)
            if buffer.strip():
                yield _parse_commit(buffer)
            stderr = await proc.stderr.read()
            if await proc.wait() != 0:
                raise GitError(
                    f"git log failed (exit {proc.returncode}): "
                    f"{stderr.decode(errors='replace').strip()}"
                )
        finally:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

    @staticmethod
    def parent_count(commit: CommitRef) -> int:
        return commit.parent_count

    # ── trees and blobs ───────────────────────────────────────────────────

    async def changed_paths(self, commit: CommitRef) -> list[ChangedPath]:
        """Paths changed relative to the first parent (root commit: all added).

        Merge commits report nothing here; callers skip them anyway.
        """
        _, out = await self._run(
            [
                "diff-tree", "-r", "-z", "--no-commit-id", "--no-renames",
                "--root", "--name-status", commit.sha,
            ]
        )
        fields = [f for f in out.decode("utf-8", errors="replace").split("\0") if f]
        changes: list[ChangedPath] = []
        for status, path in zip(fields[0::2], fields[1::2]):
            changes.append(ChangedPath(path=path, status=_STATUS_MAP.get(status[0], "modified")))
        return changes

    async def tree_entries(self, commit: CommitRef) -> dict[str, str]:
        """Map every file path in the commit's tree to its blob id."""
        _, out = await self._run(["ls-tree", "-r", "-z", "--full-tree", commit.sha])
        entries: dict[str, str] = {}
        for record in out.decode("utf-8", errors="replace").split("\0"):
            if not record:
                continue
            meta, path = record.split("\t", 1)
            _mode, obj_type, oid = meta.split()
            if obj_type == "blob":
                entries[path] = oid
        return entries

    async def file_content_at(self, commit: CommitRef, path: str) -> bytes | None:
        """Raw bytes of *path* at *commit*, or None if absent."""
        code, out = await self._run(["cat-file", "blob", f"{commit.sha}:{path}"], check=False)
        if code != 0:
            return None
        return out

    async def blob_content(self, oid: str) -> bytes:
        _, out = await self._run(["cat-file", "blob", oid])
        return out
