"""Git helpers: branch and project resolution, and the push itself."""

import asyncio
import logging
import re
from collections.abc import Sequence
from pathlib import Path

from yarl import URL

log = logging.getLogger(__name__)

SCP_REMOTE_RE = re.compile(r"^[\w.-]+@[^:]+:(?P<path>.+?)(?:\.git)?/?$")


class GitError(Exception):
    """Raised when a git command fails."""


async def run_git(*args: str, cwd: Path | None = None) -> str:
    """Run a git command and return its stripped stdout."""
    process = await asyncio.create_subprocess_exec(
        "git",
        *args,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()

    if process.returncode != 0:
        raise GitError(f"Git command failed: {stderr.decode().strip()}")

    return stdout.decode().strip()


async def get_current_branch(cwd: Path | None = None) -> str:
    """Return the checked out branch name."""
    branch = await run_git("rev-parse", "--abbrev-ref", "HEAD", cwd=cwd)
    if branch == "HEAD":
        raise GitError("HEAD is detached, check out a branch before pushing")
    return branch


async def get_remote_url(cwd: Path | None = None, remote: str = "origin") -> str:
    """Return the fetch URL of a remote."""
    return await run_git("config", "--get", f"remote.{remote}.url", cwd=cwd)


def parse_project_path(remote_url: str) -> str | None:
    """Extract the GitLab project path from a remote URL.

    Handles scp-like SSH remotes (git@host:group/project.git) and URL remotes
    (https://host/group/project.git, ssh://git@host/group/project.git).

    Returns:
        The project path (e.g., "group/sub/project"), or None if the URL has
        no usable path.

    """
    if match := SCP_REMOTE_RE.match(remote_url):
        return match.group("path")

    try:
        url = URL(remote_url)
    except ValueError:
        return None

    if not url.scheme or not url.host:
        return None

    path = url.path.strip("/").removesuffix(".git")
    return path or None


async def push(git_args: Sequence[str], cwd: Path | None = None) -> int:
    """Run git push with the given arguments and return its exit code.

    Output goes straight to the terminal so git's progress and prompts work.
    """
    cmd_args = ["push", *git_args]
    log.info("🚀 Executing: git %s", " ".join(cmd_args))

    process = await asyncio.create_subprocess_exec("git", *cmd_args, cwd=cwd)
    returncode = await process.wait()

    if returncode == 0:
        log.info("✅ Push completed successfully!")
    else:
        log.error("❌ Push failed")
    return returncode
