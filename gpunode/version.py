"""Version information for the running build."""

from __future__ import annotations

DEFAULT_VERSION = "unknown"


def get_version_parts(version: str = DEFAULT_VERSION, git_commit: str = "") -> list[str]:
    """Return the version followed by the commit line, if a commit is known."""
    parts = [version]
    if git_commit:
        parts.append(f"commit: {git_commit}")
    return parts


def get_version_string(*args: str, version: str = DEFAULT_VERSION, git_commit: str = "") -> str:
    """Return the version parts and any extra lines joined by newlines."""
    return "\n".join([*get_version_parts(version, git_commit), *args])