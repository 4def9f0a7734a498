"""Tests for GitLab API models."""

import pytest

from gitlab_safe_push.gitlab.models import (
    Pipeline,
    PipelineSnapshot,
    normalize_status,
)
from gitlab_safe_push.testing.gitlab.payloads import pipeline


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("created", "pending"),
        ("waiting_for_resource", "pending"),
        ("preparing", "pending"),
        ("pending", "pending"),
        ("running", "running"),
        ("success", "success"),
        ("failed", "failed"),
        ("canceled", "canceled"),
        ("skipped", "skipped"),
        ("manual", "skipped"),
        ("scheduled", "skipped"),
        ("something_new", "unknown"),
    ],
)
def test_normalize_status(raw: str, expected: str) -> None:
    """Raw GitLab statuses fold onto the gate's statuses."""
    assert normalize_status(raw) == expected


def test_pipeline_parses_api_payload() -> None:
    """Pipeline model ignores fields it does not use."""
    model = Pipeline.model_validate(pipeline(pipeline_id=7, status="created"))

    assert model.id == 7
    assert model.normalized_status == "pending"
    assert model.web_url == "https://gitlab.com/test/project/-/pipelines/7"


def test_snapshot_describe() -> None:
    """Snapshots describe themselves for log lines."""
    assert PipelineSnapshot(status="running", pipeline_id=3).describe() == (
        "pipeline #3 (running)"
    )
    assert PipelineSnapshot(status="unknown").describe() == "no pipeline (unknown)"


@pytest.mark.parametrize(
    ("status", "active"),
    [("pending", True), ("running", True), ("success", False), ("unknown", False)],
)
def test_snapshot_is_active(status: str, active: bool) -> None:
    """Only pending and running pipelines are active."""
    assert PipelineSnapshot(status=status).is_active is active  # type: ignore[arg-type]
