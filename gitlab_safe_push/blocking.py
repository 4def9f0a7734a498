"""Stage and job based blocking rules for active pipelines."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from gitlab_safe_push.gitlab.models import Job


@dataclass(frozen=True, kw_only=True)
class BlockingReason:
    """Why an active pipeline blocks the push."""

    kind: Literal["job", "stage", "pre_block", "post_block"]
    name: str
    seconds_running: float | None = None

    def describe(self) -> str:
        match self.kind:
            case "job":
                return f"Blocking job '{self.name}' is running"
            case "stage":
                return f"Blocking stage '{self.name}' is running"
            case "pre_block":
                return (
                    f"Stage '{self.name}' running for {self.seconds_running:.0f}s "
                    "(approaching blocking stage)"
                )
            case "post_block":
                return f"Blocking stage '{self.name}' is running (post-block)"


@dataclass(frozen=True, kw_only=True)
class BlockingRules:
    """Narrow which parts of an active pipeline block a push.

    Without a stage or job names every active pipeline blocks. Otherwise a
    pipeline only blocks while a named job runs, while the blocking stage
    runs, once the stage before it has been running for pre_block_duration,
    or until the stage after it has been running for post_block_duration.
    """

    stage: str | None = None
    jobs: Sequence[str] = ()
    pre_block_duration: float = 15
    post_block_duration: float = 5

    @property
    def is_simple(self) -> bool:
        return self.stage is None and not self.jobs

    def evaluate(self, jobs: Sequence[Job], now: datetime) -> BlockingReason | None:
        """Return the first reason the jobs block a push, or None."""
        active = [job for job in jobs if job.is_active]

        for job in active:
            if job.name in self.jobs:
                return BlockingReason(kind="job", name=job.name)

        if self.stage is None:
            return None

        stages = stage_order(jobs)
        blocking_idx = stages.index(self.stage) if self.stage in stages else None

        for job in active:
            if job.stage == self.stage:
                return BlockingReason(kind="stage", name=job.stage)

            if blocking_idx is None:
                continue

            current_idx = stages.index(job.stage)
            running = seconds_running(job, now)

            if current_idx == blocking_idx - 1 and running >= self.pre_block_duration:
                return BlockingReason(
                    kind="pre_block", name=job.stage, seconds_running=running
                )

            if current_idx == blocking_idx + 1 and running < self.post_block_duration:
                return BlockingReason(
                    kind="post_block", name=job.stage, seconds_running=running
                )

        return None


def stage_order(jobs: Sequence[Job]) -> list[str]:
    """Return stage names in order of first appearance."""
    return list(dict.fromkeys(job.stage for job in jobs))


def seconds_running(job: Job, now: datetime) -> float:
    """Seconds since the job started, or since it was created if not started."""
    start = job.started_at or job.created_at
    return max((now - start).total_seconds(), 0.0)
