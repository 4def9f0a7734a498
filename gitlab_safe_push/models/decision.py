"""Gate decisions and poll bookkeeping."""

from dataclasses import dataclass
from typing import Literal, TypeAlias

from gitlab_safe_push.gitlab.models import PipelineSnapshot

AbortKind: TypeAlias = Literal["pipeline_active", "timeout", "canceled", "unverified"]


@dataclass(frozen=True, kw_only=True)
class Proceed:
    """Nothing is in flight, the push may go ahead."""


@dataclass(frozen=True, kw_only=True)
class Abort:
    """The push must not happen.

    The kind lets callers tell an interrupt apart from a CI block.
    """

    reason: str
    kind: AbortKind


@dataclass(frozen=True, kw_only=True)
class ProceedWithWarning:
    """Push anyway, but the pipeline state could not be verified."""

    reason: str


GateDecision: TypeAlias = Proceed | Abort | ProceedWithWarning


@dataclass(frozen=True, kw_only=True)
class PollAttempt:
    """Outcome of one query, kept only until the next one completes."""

    timestamp: float
    snapshot: PipelineSnapshot | None = None
    error: Exception | None = None
