"""Wait policy for the push gate."""

from dataclasses import dataclass
from typing import Literal, TypeAlias

from gitlab_safe_push.config import ConfigError

WaitMode: TypeAlias = Literal["wait", "no_wait"]


@dataclass(frozen=True, kw_only=True)
class WaitPolicy:
    """How the gate behaves when a pipeline is active.

    Attributes:
        mode: "wait" polls until the pipeline finishes, "no_wait" aborts at once
        poll_interval: Whole seconds between polls
        max_wait: Upper bound on the total wait in whole seconds, None for
            unbounded
        fail_open: Push with a warning when GitLab cannot be queried, instead
            of aborting

    """

    mode: WaitMode = "wait"
    poll_interval: int = 30
    max_wait: int | None = None
    fail_open: bool = True

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ConfigError(
                f"Poll interval must be positive, got {self.poll_interval}"
            )
        if self.max_wait is not None:
            if self.max_wait <= 0:
                raise ConfigError(f"Max wait must be positive, got {self.max_wait}")
            if self.max_wait < self.poll_interval:
                raise ConfigError(
                    f"Max wait ({self.max_wait}s) must be at least the poll "
                    f"interval ({self.poll_interval}s)"
                )

    @property
    def waits(self) -> bool:
        return self.mode == "wait"

    def next_poll_deadline(self, last_poll_time: float) -> float:
        """Return when the next poll is due, on the same clock as last_poll_time."""
        return last_poll_time + self.poll_interval
