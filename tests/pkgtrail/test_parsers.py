"""Tests for manifest parsers and the parser registry."""

import pytest

from pkgtrail.engines.dependency_analyzer.registry import (
    PARSER_REGISTRY,
    ParseError,
    find_parser,
    is_dependency_file,
    parse_file,
)


def _by_name(records):
    return {r.name: r for r in records}


# ── registry ──────────────────────────────────────────────────────────────


class TestRegistry:
    def test_all_parsers_registered(self):
        assert set(PARSER_REGISTRY) == {
            "cargo-lock",
            "cargo-toml",
            "gemfile",
            "gemfile-lock",
            "go-mod",
            "package-json",
            "package-lock-json",
            "pip-requirements",
            "pyproject-toml",
        }

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("Gemfile", "gemfile"),
            ("Gemfile.lock", "gemfile-lock"),
            ("apps/web/package.json", "package-json"),
            ("package-lock.json", "package-lock-json"),
            ("requirements-dev.txt", "pip-requirements"),
            ("requirements/base.txt", "pip-requirements"),
            ("services/api/pyproject.toml", "pyproject-toml"),
            ("go.mod", "go-mod"),
            ("crates/core/Cargo.toml", "cargo-toml"),
            ("Cargo.lock", "cargo-lock"),
        ],
    )
    def test_find_parser(self, path, expected):
        parser = find_parser(path)
        assert parser is not None
        assert parser.name == expected

    @pytest.mark.parametrize(
        "path",
        ["README.md", "src/app.py", "node_modules/left-pad/package.json", "vendor/bundle/Gemfile"],
    )
    def test_not_a_dependency_file(self, path):
        assert is_dependency_file(path) is False

    def test_parse_file_without_parser(self):
        with pytest.raises(ParseError):
            parse_file("README.md", b"hello")


# ── Gemfile ───────────────────────────────────────────────────────────────


class TestGemfile:
    def test_requirements_and_groups(self):
        content = """
source "https://rubygems.org"

gem "rails", "~> 7.0"
gem 'puma', '>= 5.0', '< 7'
gem "bootsnap", require: false  # boot faster

group :development, :test do
  gem "rspec-rails"
end

gem "rubocop", group: :lint
"""
        deps = _by_name(parse_file("Gemfile", content.encode()))
        assert deps["rails"].requirement == "~> 7.0"
        assert deps["rails"].dependency_type == "runtime"
        assert deps["rails"].ecosystem == "rubygems"
        assert deps["puma"].requirement == ">= 5.0, < 7"
        assert deps["bootsnap"].requirement == ">= 0"
        assert deps["rspec-rails"].dependency_type == "development"
        assert deps["rubocop"].dependency_type == "lint"

    def test_non_group_block_keeps_runtime(self):
        content = 'source "https://rubygems.org" do\n  gem "nokogiri"\nend\n'
        deps = parse_file("Gemfile", content.encode())
        assert [(d.name, d.dependency_type) for d in deps] == [("nokogiri", "runtime")]


class TestGemfileLock:
    def test_specs_and_checksums(self):
        content = """GEM
  remote: https://rubygems.org/
  specs:
    rack (3.0.8)
    rake (13.1.0)
    rails (7.1.2)
      rack (>= 2.2.4)

PLATFORMS
  ruby

CHECKSUMS
  rake (13.1.0) sha256=7854c74f48e2e975969062833adc4013f249a4b212f5e7b9d5c040bf838d54bb
  rack (3.0.8)

BUNDLED WITH
   2.5.3
"""
        deps = _by_name(parse_file("Gemfile.lock", content.encode()))
        assert set(deps) == {"rack", "rake", "rails"}
        assert deps["rails"].requirement == "7.1.2"
        assert deps["rake"].integrity == (
            "sha256=7854c74f48e2e975969062833adc4013f249a4b212f5e7b9d5c040bf838d54bb"
        )
        assert deps["rack"].integrity is None


# ── npm ───────────────────────────────────────────────────────────────────


class TestPackageJson:
    def test_sections(self):
        content = """{
  "dependencies": {"express": "^4.18.0"},
  "devDependencies": {"jest": "^29.0.0"},
  "optionalDependencies": {"fsevents": "2.3.3"},
  "peerDependencies": {"react": ">=17"}
}"""
        deps = _by_name(parse_file("package.json", content.encode()))
        assert deps["express"].dependency_type == "runtime"
        assert deps["jest"].dependency_type == "development"
        assert deps["fsevents"].dependency_type == "optional"
        assert deps["react"].dependency_type == "peer"
        assert deps["express"].requirement == "^4.18.0"

    def test_invalid_json(self):
        with pytest.raises(ParseError):
            parse_file("package.json", b"{not json")

    def test_non_object(self):
        with pytest.raises(ParseError):
            parse_file("package.json", b"[]")


class TestPackageLockJson:
    def test_packages_format(self):
        content = """{
  "lockfileVersion": 3,
  "packages": {
    "": {"name": "app"},
    "node_modules/express": {"version": "4.18.2", "integrity": "sha512-abc"},
    "node_modules/jest": {"version": "29.7.0", "dev": true},
    "node_modules/express/node_modules/debug": {"version": "2.6.9"},
    "node_modules/debug": {"version": "4.3.4"},
    "node_modules/@types/node": {"version": "20.1.0", "dev": true}
  }
}"""
        deps = _by_name(parse_file("package-lock.json", content.encode()))
        assert set(deps) == {"express", "jest", "debug", "@types/node"}
        assert deps["express"].integrity == "sha512-abc"
        assert deps["jest"].dependency_type == "development"
        assert deps["debug"].requirement == "4.3.4"

    def test_legacy_dependencies_format(self):
        content = '{"lockfileVersion": 1, "dependencies": {"lodash": {"version": "4.17.21"}}}'
        deps = parse_file("package-lock.json", content.encode())
        assert [(d.name, d.requirement) for d in deps] == [("lodash", "4.17.21")]


# ── Python ────────────────────────────────────────────────────────────────


class TestPipRequirements:
    def test_lines(self):
        content = """
# pinned
requests==2.31.0
flask >= 2.0  # web
uvicorn[standard]>=0.23
django ; python_version >= "3.10"
-r base.txt
git+https://github.com/org/repo.git
"""
        deps = _by_name(parse_file("requirements.txt", content.encode()))
        assert set(deps) == {"requests", "flask", "uvicorn", "django"}
        assert deps["requests"].requirement == "==2.31.0"
        assert deps["flask"].requirement == ">=2.0"
        assert deps["django"].requirement == "*"
        assert deps["requests"].dependency_type == "runtime"

    def test_dev_file_name(self):
        deps = parse_file("requirements-dev.txt", b"pytest>=8\n")
        assert deps[0].dependency_type == "development"


class TestPyprojectToml:
    def test_pep621(self):
        content = """
[project]
name = "app"
dependencies = ["httpx>=0.27", "click"]

[project.optional-dependencies]
test = ["pytest>=8.0"]
"""
        deps = _by_name(parse_file("pyproject.toml", content.encode()))
        assert deps["httpx"].requirement == ">=0.27"
        assert deps["click"].requirement == "*"
        assert deps["pytest"].dependency_type == "optional"

    def test_poetry(self):
        content = """
[tool.poetry.dependencies]
python = "^3.10"
requests = "^2.31"
rich = {version = "^13.0", optional = true}

[tool.poetry.group.dev.dependencies]
black = "^24.0"
"""
        deps = _by_name(parse_file("pyproject.toml", content.encode()))
        assert "python" not in deps
        assert deps["requests"].requirement == "^2.31"
        assert deps["rich"].requirement == "^13.0"
        assert deps["black"].dependency_type == "development"

    def test_invalid_toml(self):
        with pytest.raises(ParseError):
            parse_file("pyproject.toml", b"[project\nname=")


# ── Go / Rust ─────────────────────────────────────────────────────────────


class TestGoMod:
    def test_require_forms(self):
        content = """module example.com/app

go 1.21

require github.com/pkg/errors v0.9.1

require (
\tgolang.org/x/sync v0.5.0
\tgithub.com/stretchr/testify v1.8.4 // indirect
)
"""
        deps = _by_name(parse_file("go.mod", content.encode()))
        assert deps["github.com/pkg/errors"].requirement == "v0.9.1"
        assert deps["golang.org/x/sync"].dependency_type == "runtime"
        assert deps["github.com/stretchr/testify"].dependency_type == "indirect"
        assert deps["golang.org/x/sync"].ecosystem == "go"


class TestCargo:
    def test_cargo_toml(self):
        content = """
[package]
name = "app"

[dependencies]
serde = "1.0"
tokio = { version = "1.35", features = ["full"] }
local = { path = "../local" }

[dev-dependencies]
criterion = "0.5"
"""
        deps = _by_name(parse_file("Cargo.toml", content.encode()))
        assert deps["serde"].requirement == "1.0"
        assert deps["tokio"].requirement == "1.35"
        assert deps["local"].requirement == "*"
        assert deps["criterion"].dependency_type == "development"

    def test_cargo_lock(self):
        content = """
version = 3

[[package]]
name = "app"
version = "0.1.0"

[[package]]
name = "serde"
version = "1.0.193"
source = "registry+https://github.com/rust-lang/crates.io-index"
checksum = "25dd9975e68d0cb5aa1120c288333fc98731bd1dd12f561e468ea4728c042b89"
"""
        deps = parse_file("Cargo.lock", content.encode())
        assert [d.name for d in deps] == ["serde"]
        assert deps[0].integrity == (
            "sha256=25dd9975e68d0cb5aa1120c288333fc98731bd1dd12f561e468ea4728c042b89"
        )


# ── badly shaped files ────────────────────────────────────────────────────


class TestBadlyShapedFiles:
    @pytest.mark.parametrize(
        "path, content",
        [
            ("Cargo.toml", 'dependencies = "x"\n\n[package]\nname = "app"\n'),
            ("Cargo.lock", '[[package]]\nversion = "1.0.0"\nsource = "registry"\n'),
            ("Cargo.lock", 'package = "serde"\n'),
            ("pyproject.toml", '[project]\noptional-dependencies = ["pytest"]\n'),
            ("pyproject.toml", 'project = "app"\n'),
            ("pyproject.toml", '[tool.poetry]\ndependencies = ["requests"]\n'),
            ("package-lock.json", '{"packages": {"node_modules/a": "1.0.0"}}'),
            ("package-lock.json", '{"dependencies": ["a"]}'),
        ],
    )
    def test_raises_parse_error(self, path, content):
        with pytest.raises(ParseError):
            parse_file(path, content.encode())

    def test_non_string_pep508_entries_are_skipped(self):
        content = '[project]\ndependencies = ["click", 3]\n'
        assert [d.name for d in parse_file("pyproject.toml", content.encode())] == ["click"]
