"""Identity of the pipeline target for one invocation."""

from dataclasses import dataclass


@dataclass(frozen=True, kw_only=True)
class PipelineRef:
    """A GitLab project and the branch whose pipelines gate the push."""

    project_id: str
    ref: str

    def __post_init__(self) -> None:
        if not self.project_id.strip():
            raise ValueError("project_id must not be empty")
        if not self.ref.strip():
            raise ValueError("ref must not be empty")

    def __str__(self) -> str:
        return f"{self.project_id}@{self.ref}"
