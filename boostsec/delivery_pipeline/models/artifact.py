"""Model for published build artifacts."""

from pydantic import BaseModel, ConfigDict, Field


class Artifact(BaseModel):
    """Container image pushed to a registry by a pipeline run."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Image name including registry host")
    tag: str = Field(..., description="Version tag")
    digest: str = Field(..., description="Registry content digest (sha256:...)")
    run_id: str = Field(..., description="Run that produced the artifact")

    @property
    def reference(self) -> str:
        """Return the tagged image reference."""
        return f"{self.name}:{self.tag}"

    @property
    def pinned_reference(self) -> str:
        """Return the digest-pinned image reference."""
        return f"{self.name}@{self.digest}"
