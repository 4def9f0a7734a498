"""Fixtures for module tests using WireMock testcontainers."""

import os
import subprocess
import sys
from collections.abc import Callable, Generator
from pathlib import Path
from typing import TypeAlias

import docker
import pytest
from docker.errors import DockerException
from testcontainers.core import testcontainers_config
from wiremock.client import Mappings
from wiremock.constants import Config
from wiremock.testing.testcontainer import WireMockContainer

RunCli: TypeAlias = Callable[..., subprocess.CompletedProcess[str]]


@pytest.fixture(scope="session", autouse=True)
def _require_docker() -> None:
    """Skip module tests when no Docker daemon is reachable."""
    try:
        docker.from_env().ping()
    except DockerException as e:
        pytest.skip(f"Docker is not available: {e}")


@pytest.fixture(scope="session", autouse=True)
def _disable_ryuk() -> None:
    """Disable the extra cleanup instance, we use contexts to clean containers."""
    testcontainers_config.ryuk_disabled = True


@pytest.fixture(scope="session")
def wiremock_server() -> Generator[WireMockContainer, None, None]:
    """Start WireMock container using wiremock's testcontainer support."""
    with WireMockContainer(secure=False) as wm:
        Config.base_url = wm.get_url("__admin")
        yield wm
        print(wm.get_logs())


@pytest.fixture
def gitlab_url(wiremock_server: WireMockContainer) -> Generator[str, None, None]:
    """WireMock base URL with mappings cleared between tests."""
    Mappings.delete_all_mappings()
    yield wiremock_server.get_base_url()
    Mappings.delete_all_mappings()


def _git(*args: str, cwd: Path) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


@pytest.fixture
def bare_remote(tmp_path: Path) -> Path:
    """Create a bare repository that receives pushes."""
    remote = tmp_path / "remote.git"
    _git("init", "--bare", str(remote), cwd=tmp_path)
    return remote


@pytest.fixture
def project_repo(tmp_path: Path, bare_remote: Path) -> Path:
    """Create a checkout of group/project on main, pushing to bare_remote."""
    repo = tmp_path / "project"
    repo.mkdir()
    _git("init", "--initial-branch", "main", cwd=repo)
    _git("config", "user.email", "test@example.com", cwd=repo)
    _git("config", "user.name", "Test", cwd=repo)
    _git("remote", "add", "origin", "https://gitlab.test/group/project.git", cwd=repo)
    _git("config", "remote.origin.pushurl", str(bare_remote), cwd=repo)
    (repo / "README.md").write_text("# Project\n")
    _git("add", "-A", cwd=repo)
    _git("commit", "-m", "Initial commit", cwd=repo)
    return repo


@pytest.fixture
def remote_head(bare_remote: Path) -> Callable[[str], str | None]:
    """Return a function resolving a branch on the bare remote, if it exists."""

    def _remote_head(branch: str) -> str | None:
        result = subprocess.run(
            ["git", "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"],
            cwd=bare_remote,
            capture_output=True,
            text=True,
        )
        return result.stdout.strip() or None

    return _remote_head


@pytest.fixture
def run_cli(project_repo: Path, gitlab_url: str, tmp_path: Path) -> RunCli:
    """Return a function running gitlab-safe-push inside project_repo."""
    env = os.environ | {
        "GITLAB_TOKEN": "glpat-test-token",
        "GITLAB_URL": gitlab_url,
        "HOME": str(tmp_path),
    }
    env.pop("GITLAB_BLOCKING_STAGE", None)
    env.pop("GITLAB_BLOCKING_JOBS", None)

    def _run_cli(*args: str) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            [sys.executable, "-m", "gitlab_safe_push", *args],
            cwd=project_repo,
            env=env,
            capture_output=True,
            text=True,
            timeout=60,
        )

    return _run_cli
