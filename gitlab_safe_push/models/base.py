"""Base model configuration for API data structures."""

from pydantic import BaseModel, ConfigDict


class Model(BaseModel):
    """Base model with standard configuration.

    GitLab responses carry many more fields than we read, so extras are ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")
