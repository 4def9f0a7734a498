"""Settings resolution from flags, environment and the config file."""

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    ValidationError,
)

from gitlab_safe_push.gitlab.config import GitLabConfig

log = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".gitlab-safe-push-config.json"

DEFAULT_CHECK_INTERVAL = 30
DEFAULT_PRE_BLOCK_DURATION = 15.0
DEFAULT_POST_BLOCK_DURATION = 5.0

# Settings that may also come from the environment.
ENV_VARS: Mapping[str, str] = {
    "token": "GITLAB_TOKEN",
    "gitlab_url": "GITLAB_URL",
    "blocking_stage": "GITLAB_BLOCKING_STAGE",
    "blocking_jobs": "GITLAB_BLOCKING_JOBS",
}


class ConfigError(Exception):
    """Raised when settings are missing or invalid."""


class FileSettings(BaseModel):
    """Contents of the JSON config file. Every key is optional."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    token: str | None = None
    gitlab_url: str | None = None
    blocking_stage: str | None = None
    blocking_jobs: str | None = None
    pre_block_duration: PositiveFloat | None = None
    post_block_duration: PositiveFloat | None = None
    check_interval: PositiveInt | None = None
    max_wait: PositiveInt | None = None
    simple_mode: bool | None = None
    fail_closed: bool | None = None


@dataclass(frozen=True, kw_only=True)
class Settings:
    """Fully resolved settings for one invocation."""

    gitlab: GitLabConfig
    check_interval: int = DEFAULT_CHECK_INTERVAL
    max_wait: int | None = None
    fail_open: bool = True
    blocking_stage: str | None = None
    blocking_jobs: Sequence[str] = ()
    pre_block_duration: float = DEFAULT_PRE_BLOCK_DURATION
    post_block_duration: float = DEFAULT_POST_BLOCK_DURATION


def default_config_path() -> Path:
    """Return the config file location in the user's home directory."""
    return Path.home() / CONFIG_FILE_NAME


def load_config_file(path: Path) -> FileSettings:
    """Load the config file, returning empty settings when it does not exist."""
    try:
        content = path.read_text()
    except FileNotFoundError:
        log.debug("No config file at %s", path)
        return FileSettings()
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    try:
        return FileSettings.model_validate(json.loads(content))
    except (ValueError, ValidationError) as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e


def parse_job_names(blocking_jobs: str | None) -> Sequence[str]:
    """Parse comma-separated job names."""
    if not blocking_jobs or not blocking_jobs.strip():
        return ()
    return tuple(j.strip() for j in blocking_jobs.split(",") if j.strip())


def resolve_settings(
    overrides: Mapping[str, Any],
    environ: Mapping[str, str],
    file_settings: FileSettings,
) -> Settings:
    """Merge settings with precedence flag > environment > file > default.

    Args:
        overrides: Values given on the command line, None meaning unset
        environ: Process environment
        file_settings: Parsed config file

    Raises:
        ConfigError: If the token or the GitLab URL is missing or invalid.

    """

    def pick(key: str, default: Any = None) -> Any:
        if (value := overrides.get(key)) is not None:
            return value
        if (env_var := ENV_VARS.get(key)) and (value := environ.get(env_var)):
            return value
        if (value := getattr(file_settings, key)) is not None:
            return value
        return default

    token = pick("token")
    if not token:
        raise ConfigError(
            "GitLab token not found! Set GITLAB_TOKEN environment variable "
            "or use --token"
        )

    gitlab_url = pick("gitlab_url")
    if not gitlab_url:
        raise ConfigError(
            "GitLab URL not found! Set GITLAB_URL environment variable "
            "or use --gitlab-url"
        )

    try:
        gitlab = GitLabConfig(token=SecretStr(token), gitlab_url=gitlab_url)
    except ValidationError as e:
        raise ConfigError(f"Invalid GitLab URL {gitlab_url!r}") from e

    blocking_stage = pick("blocking_stage") or None
    blocking_jobs = parse_job_names(pick("blocking_jobs"))

    # A configured stage or job list always means advanced mode.
    if pick("simple_mode") and (blocking_stage or blocking_jobs):
        log.info("Blocking stage or jobs configured, ignoring simple mode")

    fail_closed = pick("fail_closed", False)

    return Settings(
        gitlab=gitlab,
        check_interval=pick("check_interval", DEFAULT_CHECK_INTERVAL),
        max_wait=pick("max_wait"),
        fail_open=not fail_closed,
        blocking_stage=blocking_stage,
        blocking_jobs=blocking_jobs,
        pre_block_duration=pick("pre_block_duration", DEFAULT_PRE_BLOCK_DURATION),
        post_block_duration=pick("post_block_duration", DEFAULT_POST_BLOCK_DURATION),
    )
