"""Gate controller deciding whether a push may go ahead."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol, TypeVar

from gitlab_safe_push.blocking import BlockingRules
from gitlab_safe_push.gitlab.client import NetworkQueryError, QueryError
from gitlab_safe_push.gitlab.models import Job, PipelineSnapshot
from gitlab_safe_push.models.decision import (
    Abort,
    GateDecision,
    PollAttempt,
    Proceed,
    ProceedWithWarning,
)
from gitlab_safe_push.models.ref import PipelineRef
from gitlab_safe_push.policy import WaitPolicy

T = TypeVar("T")

log = logging.getLogger(__name__)


class PipelineSource(Protocol):
    """What the gate needs from a pipeline query client."""

    async def query_latest_pipeline(self, ref: PipelineRef) -> PipelineSnapshot: ...

    async def pipeline_jobs(
        self, ref: PipelineRef, pipeline_id: int
    ) -> Sequence[Job]: ...


class GateCanceled(Exception):
    """Raised internally once the operator asked to stop."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class GateController:
    """Polls pipeline state under a wait policy until a decision is reached.

    The controller is a single sequential loop. Cancellation is observed
    before every query and while a query or a sleep is in flight; the decision
    is always based on the last completed query.
    """

    client: PipelineSource
    policy: WaitPolicy
    rules: BlockingRules = field(default_factory=BlockingRules)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    clock: Callable[[], float] = time.monotonic
    wall_clock: Callable[[], datetime] = _utcnow
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def run(self, ref: PipelineRef) -> GateDecision:
        """Resolve pipeline state for ref and return the gate decision."""
        try:
            return await self._run(ref)
        except GateCanceled:
            log.info("Canceled by user")
            return Abort(reason="canceled by user", kind="canceled")

    async def _run(self, ref: PipelineRef) -> GateDecision:
        wait_started: float | None = None

        while True:
            started = self.clock()
            try:
                snapshot = await self._with_retry(
                    lambda: self.client.query_latest_pipeline(ref)
                )
                attempt = PollAttempt(timestamp=started, snapshot=snapshot)
                blocking = await self._blocking_reason(ref, snapshot)
            except QueryError as e:
                return self._degraded(PollAttempt(timestamp=started, error=e))

            if blocking is None:
                log.info("No blocking conditions detected (%s)", snapshot.describe())
                return Proceed()

            if not self.policy.waits:
                return Abort(
                    reason=f"pipeline active: {blocking}", kind="pipeline_active"
                )

            now = self.clock()
            if wait_started is None:
                wait_started = now
                log.info("Blocking condition detected. Waiting...")

            deadline = self.policy.next_poll_deadline(attempt.timestamp)
            if self.policy.max_wait is not None:
                deadline = min(deadline, wait_started + self.policy.max_wait)

            log.info("Pipeline #%s - %s", snapshot.pipeline_id, blocking)
            log.info("Next check in %.0f seconds...", max(deadline - now, 0))
            await self._race(self.sleep(max(deadline - now, 0)))

            elapsed = self.clock() - wait_started
            if self.policy.max_wait is not None and elapsed >= self.policy.max_wait:
                return Abort(
                    reason=(
                        f"wait timeout exceeded after {elapsed:.0f}s "
                        f"({snapshot.describe()} still active)"
                    ),
                    kind="timeout",
                )

    async def _blocking_reason(
        self, ref: PipelineRef, snapshot: PipelineSnapshot
    ) -> str | None:
        """Describe why snapshot blocks the push, None when it does not."""
        if not snapshot.is_active:
            return None

        if self.rules.is_simple or snapshot.pipeline_id is None:
            return snapshot.describe()

        pipeline_id = snapshot.pipeline_id
        jobs = await self._with_retry(
            lambda: self.client.pipeline_jobs(ref, pipeline_id)
        )
        reason = self.rules.evaluate(jobs, self.wall_clock())
        if reason is None:
            log.info(
                "Pipeline #%s is %s but outside the blocking window",
                pipeline_id,
                snapshot.status,
            )
            return None
        return reason.describe()

    async def _with_retry(self, call: Callable[[], Awaitable[T]]) -> T:
        """Run call, retrying once right away if it failed on the network."""
        try:
            return await self._race(call())
        except NetworkQueryError as e:
            log.warning("Pipeline query failed (%s), retrying", e)
        return await self._race(call())

    async def _race(self, aw: Awaitable[T]) -> T:
        """Await aw unless cancellation is requested first."""
        if self.cancel_event.is_set():
            raise GateCanceled

        task = asyncio.ensure_future(aw)
        canceled = asyncio.ensure_future(self.cancel_event.wait())
        try:
            await asyncio.wait({task, canceled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [t for t in (task, canceled) if not t.done()]
            for t in pending:
                t.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        if self.cancel_event.is_set():
            # Superseded by the interrupt; the result is dropped.
            if task.done() and not task.cancelled():
                task.exception()
            raise GateCanceled
        return task.result()

    def _degraded(self, attempt: PollAttempt) -> GateDecision:
        reason = f"pipeline status unknown: {attempt.error}"
        if self.policy.fail_open:
            log.warning("Unable to check pipelines: %s", attempt.error)
            return ProceedWithWarning(reason=reason)
        log.error("Unable to check pipelines: %s", attempt.error)
        return Abort(reason=reason, kind="unverified")
