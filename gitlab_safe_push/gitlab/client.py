"""GitLab pipeline query client."""

import asyncio
import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import aiohttp
from pydantic import TypeAdapter, ValidationError

from gitlab_safe_push.gitlab.config import GitLabConfig
from gitlab_safe_push.gitlab.models import Job, Pipeline, PipelineSnapshot
from gitlab_safe_push.models.ref import PipelineRef

log = logging.getLogger(__name__)

AUTH_FAILURE_STATUSES = frozenset([401, 403, 404])

PIPELINES_PAGE_SIZE = 20

_pipelines_adapter = TypeAdapter(list[Pipeline])
_jobs_adapter = TypeAdapter(list[Job])


class QueryError(Exception):
    """Raised when pipeline state cannot be read from GitLab."""


class NetworkQueryError(QueryError):
    """Connection failure, timeout or unexpected server response."""


class AuthQueryError(QueryError):
    """The token was rejected or the project is not visible to it."""


class MalformedQueryError(QueryError):
    """The response body could not be parsed."""


@dataclass(frozen=True, kw_only=True)
class PipelineQueryClient:
    """Read-only client for the GitLab pipelines API.

    Each call performs exactly one request and keeps no state between calls,
    so retries and backoff belong to the caller.
    """

    config: GitLabConfig
    session: aiohttp.ClientSession = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: GitLabConfig
    ) -> AsyncGenerator["PipelineQueryClient", None]:
        """Create client with managed session lifecycle."""
        headers = {"PRIVATE-TOKEN": config.token.get_secret_value()}
        async with aiohttp.ClientSession(
            base_url=config.api_base_url,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=config.request_timeout),
        ) as session:
            yield cls(config=config, session=session)

    async def query_latest_pipeline(self, ref: PipelineRef) -> PipelineSnapshot:
        """Return the status of the most recently created pipeline for ref.

        A ref without pipelines yields an `unknown` snapshot rather than an
        error.

        Raises:
            QueryError: If the lookup failed; see the subclasses for causes.

        """
        url = f"projects/{quote(ref.project_id, safe='')}/pipelines"
        params = {
            "ref": ref.ref,
            "order_by": "id",
            "sort": "desc",
            "per_page": str(PIPELINES_PAGE_SIZE),
        }
        data = await self._get_json(url, params=params)

        try:
            pipelines = _pipelines_adapter.validate_python(data)
        except ValidationError as e:
            raise MalformedQueryError(f"Invalid pipelines response: {e}") from e

        latest = select_latest(pipelines, ref.ref)
        if latest is None:
            log.debug("No pipeline found for %s", ref)
            return PipelineSnapshot(status="unknown")

        snapshot = PipelineSnapshot(
            status=latest.normalized_status,
            pipeline_id=latest.id,
            web_url=latest.web_url,
        )
        log.debug("Latest pipeline for %s: %s", ref, snapshot.describe())
        return snapshot

    async def pipeline_jobs(self, ref: PipelineRef, pipeline_id: int) -> Sequence[Job]:
        """Return the jobs of a pipeline, in the order GitLab lists them."""
        url = f"projects/{quote(ref.project_id, safe='')}/pipelines/{pipeline_id}/jobs"
        data = await self._get_json(url, params={"per_page": "100"})

        try:
            return _jobs_adapter.validate_python(data)
        except ValidationError as e:
            raise MalformedQueryError(f"Invalid jobs response: {e}") from e

    async def _get_json(self, url: str, params: dict[str, str]) -> Any:
        try:
            async with self.session.get(url, params=params) as response:
                if response.status in AUTH_FAILURE_STATUSES:
                    text = await response.text()
                    raise AuthQueryError(
                        f"GitLab rejected the request: {response.status} {text}"
                    )
                if response.status != 200:
                    text = await response.text()
                    raise NetworkQueryError(
                        f"GitLab API error: {response.status} {text}"
                    )
                return await response.json()
        except aiohttp.ContentTypeError as e:
            raise MalformedQueryError(f"Unexpected content type: {e.message}") from e
        except ValueError as e:
            raise MalformedQueryError(f"Response is not valid JSON: {e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkQueryError(f"Cannot reach GitLab: {e!r}") from e


def select_latest(pipelines: Sequence[Pipeline], ref: str) -> Pipeline | None:
    """Pick the most recently created pipeline for ref, newest id on ties."""
    matching = [p for p in pipelines if p.ref == ref]
    if not matching:
        return None
    return max(matching, key=lambda p: (p.created_at, p.id))
