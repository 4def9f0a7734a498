"""Fixtures for integration tests."""

import subprocess
from pathlib import Path
from typing import Protocol

import pytest


class GitFn(Protocol):
    """Protocol for running git in a test repository."""

    def __call__(self, *args: str, cwd: Path | None = None) -> str:
        """Run git and return its stripped stdout."""


@pytest.fixture
def git() -> GitFn:
    """Return a function running git commands that must succeed."""

    def _git(*args: str, cwd: Path | None = None) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            check=True,
            capture_output=True,
            text=True,
        )
        return result.stdout.strip()

    return _git


@pytest.fixture
def bare_remote(tmp_path: Path, git: GitFn) -> Path:
    """Create a bare repository to push into."""
    remote = tmp_path / "remote.git"
    git("init", "--bare", str(remote))
    return remote


@pytest.fixture
def git_repo(tmp_path: Path, git: GitFn, bare_remote: Path) -> Path:
    """Create a repository on branch main with one commit and a GitLab origin.

    The fetch URL names a GitLab project while pushes go to the local bare
    repository.
    """
    repo = tmp_path / "work"
    repo.mkdir()
    git("init", "--initial-branch", "main", cwd=repo)
    git("config", "user.email", "test@example.com", cwd=repo)
    git("config", "user.name", "Test", cwd=repo)
    git(
        "remote",
        "add",
        "origin",
        "git@gitlab.test:group/project.git",
        cwd=repo,
    )
    git("config", "remote.origin.pushurl", str(bare_remote), cwd=repo)
    (repo / "README.md").write_text("# Project\n")
    git("add", "-A", cwd=repo)
    git("commit", "-m", "Initial commit", cwd=repo)
    return repo
