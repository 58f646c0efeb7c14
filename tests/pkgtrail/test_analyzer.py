"""Tests for CommitAnalyzer."""

from pkgtrail.core.git import GitRepository
from pkgtrail.engines.dependency_analyzer import CommitAnalyzer
from pkgtrail.engines.dependency_analyzer.models import (
    CHANGE_ADDED,
    CHANGE_MODIFIED,
    CHANGE_REMOVED,
)
from pkgtrail.engines.dependency_analyzer.registry import PARSER_REGISTRY

GEMFILE_V1 = 'source "https://rubygems.org"\ngem "rails", "~> 7.0"\ngem "puma", "~> 6.0"\n'
GEMFILE_V2 = 'source "https://rubygems.org"\ngem "rails", "~> 7.1"\n'

GEMFILE_LOCK = """GEM
  remote: https://rubygems.org/
  specs:
    rake (13.1.0)

CHECKSUMS
  rake (13.1.0) sha256=7854c74f48e2e975969062833adc4013f249a4b212f5e7b9d5c040bf838d54bb
"""


class TestAnalyze:
    async def test_added_then_modified_and_removed(self, git_repo, repository):
        first = git_repo.commit("add gems", {"Gemfile": GEMFILE_V1})
        second = git_repo.commit("bump rails", {"Gemfile": GEMFILE_V2})
        analyzer = CommitAnalyzer(repository)

        r1 = await analyzer.analyze(await repository.resolve(first), {})
        assert {(c.name, c.change_type, c.requirement) for c in r1.changes} == {
            ("rails", CHANGE_ADDED, "~> 7.0"),
            ("puma", CHANGE_ADDED, "~> 6.0"),
        }

        r2 = await analyzer.analyze(await repository.resolve(second), r1.state)
        changes = {c.name: c for c in r2.changes}
        assert changes["rails"].change_type == CHANGE_MODIFIED
        assert changes["rails"].previous_requirement == "~> 7.0"
        assert changes["rails"].requirement == "~> 7.1"
        assert changes["puma"].change_type == CHANGE_REMOVED
        assert set(r2.state) == {("Gemfile", "rails")}

    async def test_commit_without_dependency_files(self, git_repo, repository):
        git_repo.commit("add gems", {"Gemfile": GEMFILE_V1})
        sha = git_repo.commit("docs", {"README.md": "hello\n"})
        result = await CommitAnalyzer(repository).analyze(await repository.resolve(sha))
        assert result is None

    async def test_merge_commit_is_skipped(self, git_repo, repository):
        git_repo.commit("root", {"README.md": "x"})
        git_repo.checkout("feature", create=True)
        git_repo.commit("gems", {"Gemfile": GEMFILE_V1})
        git_repo.checkout("main")
        merge = git_repo.merge("feature", "merge")
        result = await CommitAnalyzer(repository).analyze(await repository.resolve(merge))
        assert result is None

    async def test_touching_file_without_change_gives_empty_delta(self, git_repo, repository):
        first = git_repo.commit("gems", {"Gemfile": GEMFILE_V1})
        second = git_repo.commit("comment", {"Gemfile": GEMFILE_V1 + "# comment\n"})
        analyzer = CommitAnalyzer(repository)
        r1 = await analyzer.analyze(await repository.resolve(first), {})
        r2 = await analyzer.analyze(await repository.resolve(second), r1.state)
        assert r2 is not None
        assert r2.changes == []
        assert r2.state == r1.state

    async def test_parse_failure_is_tolerated(self, git_repo, repository):
        sha = git_repo.commit(
            "mixed",
            {"Gemfile": GEMFILE_V2, "package.json": "{broken"},
        )
        result = await CommitAnalyzer(repository).analyze(await repository.resolve(sha), {})
        assert set(result.state) == {("Gemfile", "rails")}

    async def test_lockfile_checksum_kept_verbatim(self, git_repo, repository):
        sha = git_repo.commit("lock", {"Gemfile.lock": GEMFILE_LOCK})
        result = await CommitAnalyzer(repository).analyze(await repository.resolve(sha), {})
        entry = result.state[("Gemfile.lock", "rake")]
        assert entry.manifest_kind == "lockfile"
        assert entry.integrity == (
            "sha256=7854c74f48e2e975969062833adc4013f249a4b212f5e7b9d5c040bf838d54bb"
        )

    async def test_deleting_manifest_removes_entries(self, git_repo, repository):
        first = git_repo.commit("gems", {"Gemfile": GEMFILE_V2})
        second = git_repo.commit("drop", {"Gemfile": None, "README.md": "x"})
        analyzer = CommitAnalyzer(repository)
        r1 = await analyzer.analyze(await repository.resolve(first), {})
        r2 = await analyzer.analyze(await repository.resolve(second), r1.state)
        assert [(c.name, c.change_type) for c in r2.changes] == [("rails", CHANGE_REMOVED)]
        assert r2.state == {}


class TestDependenciesAt:
    async def test_nested_manifests(self, git_repo, repository: GitRepository):
        sha = git_repo.commit(
            "monorepo",
            {
                "Gemfile": GEMFILE_V2,
                "web/package.json": '{"dependencies": {"react": "^18.0.0"}}',
                "node_modules/x/package.json": '{"dependencies": {"y": "1"}}',
            },
        )
        state = await CommitAnalyzer(repository).dependencies_at(await repository.resolve(sha))
        assert set(state) == {("Gemfile", "rails"), ("web/package.json", "react")}
        assert state[("web/package.json", "react")].ecosystem == "npm"


class TestParserErrors:
    async def test_unexpected_parser_exception_yields_no_records(
        self, git_repo, repository, monkeypatch
    ):
        def explode(path, content):
            raise KeyError("name")

        monkeypatch.setattr(PARSER_REGISTRY["cargo-lock"], "parse", explode)
        sha = git_repo.commit("mixed", {"Gemfile": GEMFILE_V2, "Cargo.lock": "version = 3\n"})

        result = await CommitAnalyzer(repository).analyze(await repository.resolve(sha), {})
        assert set(result.state) == {("Gemfile", "rails")}
