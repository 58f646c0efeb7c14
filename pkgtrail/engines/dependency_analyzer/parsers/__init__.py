"""Manifest parsers — auto-registered on import."""

from pkgtrail.engines.dependency_analyzer.parsers import (
    cargo_lock,  # noqa: F401
    cargo_toml,  # noqa: F401
    gemfile,  # noqa: F401
    gemfile_lock,  # noqa: F401
    go_mod,  # noqa: F401
    package_json,  # noqa: F401
    package_lock_json,  # noqa: F401
    pip_requirements,  # noqa: F401
    pyproject_toml,  # noqa: F401
)
