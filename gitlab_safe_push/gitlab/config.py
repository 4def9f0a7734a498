"""Connection settings for the GitLab API."""

from pydantic import BaseModel, SecretStr, field_validator
from yarl import URL


class GitLabConfig(BaseModel):
    """Configuration for talking to a GitLab instance.

    The token only needs the read_api scope: the client never writes.
    """

    token: SecretStr
    gitlab_url: str = "https://gitlab.com"
    request_timeout: float = 30

    @field_validator("gitlab_url")
    @classmethod
    def _require_absolute_http_url(cls, value: str) -> str:
        url = URL(value)
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError(
                f"GitLab URL must be absolute, e.g. https://gitlab.com (got {value!r})"
            )
        return value

    @property
    def api_base_url(self) -> str:
        return f"{self.gitlab_url.rstrip('/')}/api/v4/"
