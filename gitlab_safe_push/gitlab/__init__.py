"""GitLab CI pipeline lookups."""

from gitlab_safe_push.gitlab.client import (
    AuthQueryError,
    MalformedQueryError,
    NetworkQueryError,
    PipelineQueryClient,
    QueryError,
)
from gitlab_safe_push.gitlab.config import GitLabConfig

__all__ = [
    "AuthQueryError",
    "GitLabConfig",
    "MalformedQueryError",
    "NetworkQueryError",
    "PipelineQueryClient",
    "QueryError",
]
