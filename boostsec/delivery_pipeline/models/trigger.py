"""Model for pipeline triggers."""

from typing import Literal

from pydantic import BaseModel, Field


class Trigger(BaseModel):
    """Source reference and overrides that start a pipeline run."""

    origin: Literal["manual", "webhook", "schedule"] = Field(
        default="manual", description="What started the run"
    )
    source: str | None = Field(
        default=None, description="Repository URL or local path overriding config"
    )
    ref: str | None = Field(default=None, description="Branch or tag to check out")
    commit: str | None = Field(default=None, description="Exact commit SHA")
    image_name: str | None = Field(
        default=None, description="Override for the published image repository"
    )
    credential_id: str | None = Field(
        default=None, description="Override for the registry credential name"
    )
