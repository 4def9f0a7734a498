"""Pydantic models for GitLab CI API responses."""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, TypeAlias

from gitlab_safe_push.models.base import Model

PipelineStatus: TypeAlias = Literal[
    "pending",
    "running",
    "success",
    "failed",
    "canceled",
    "skipped",
    "unknown",
]

ACTIVE_STATUSES: frozenset[PipelineStatus] = frozenset(["pending", "running"])
ACTIVE_JOB_STATUSES = frozenset(["pending", "running"])

# Raw GitLab statuses folded onto the statuses the gate reasons about.
GITLAB_STATUS_MAP: Mapping[str, PipelineStatus] = {
    "created": "pending",
    "waiting_for_resource": "pending",
    "preparing": "pending",
    "pending": "pending",
    "running": "running",
    "success": "success",
    "failed": "failed",
    "canceled": "canceled",
    "canceling": "canceled",
    "skipped": "skipped",
    "manual": "skipped",
    "scheduled": "skipped",
}


def normalize_status(raw: str) -> PipelineStatus:
    """Map a raw GitLab status onto a PipelineStatus, `unknown` if unrecognized."""
    return GITLAB_STATUS_MAP.get(raw, "unknown")


class Pipeline(Model):
    """A pipeline from the GitLab pipelines API."""

    id: int
    status: str
    ref: str
    created_at: datetime
    web_url: str | None = None

    @property
    def normalized_status(self) -> PipelineStatus:
        return normalize_status(self.status)


class Job(Model):
    """A job from the GitLab pipeline jobs API."""

    id: int
    name: str
    stage: str
    status: str
    created_at: datetime
    started_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        # Jobs of later stages sit in "created" until their stage starts.
        return self.status in ACTIVE_JOB_STATUSES


@dataclass(frozen=True, kw_only=True)
class PipelineSnapshot:
    """Point-in-time view of the most relevant pipeline for a ref."""

    status: PipelineStatus
    pipeline_id: int | None = None
    web_url: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def describe(self) -> str:
        if self.pipeline_id is None:
            return f"no pipeline ({self.status})"
        return f"pipeline #{self.pipeline_id} ({self.status})"
