"""Isolated per-run workspaces."""

import asyncio
import logging
import re
import secrets
import shutil
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from boostsec.delivery_pipeline.errors import ConfigurationError, ToolInvocationError
from boostsec.delivery_pipeline.invoker import ToolInvoker

logger = logging.getLogger(__name__)

_NAME_UNSAFE = re.compile(r"[^a-z0-9_.-]+")


def new_run_id() -> str:
    """Return a unique run identifier (UTC timestamp plus random suffix)."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"{stamp}-{secrets.token_hex(4)}"


class Workspace(BaseModel):
    """Checkout directory and resource names owned by a single run."""

    run_id: str = Field(..., description="Run owning the workspace")
    path: Path = Field(..., description="Checkout directory")
    container_name: str = Field(..., description="Container name reserved for the run")
    commit: str | None = Field(default=None, description="Checked out commit SHA")


class WorkspaceManager:
    """Allocate, populate and release run workspaces under a root directory."""

    def __init__(
        self, root: Path, invoker: ToolInvoker | None = None, keep: bool = False
    ) -> None:
        """Initialize manager with the parent directory of all workspaces."""
        self.root = root
        self.invoker = invoker or ToolInvoker()
        self.keep = keep

    def allocate(self, pipeline: str, run_id: str) -> Workspace:
        """Create an empty workspace for a run.

        Raises:
            ConfigurationError: If a workspace for the run id already exists

        """
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / run_id
        try:
            path.mkdir()
        except FileExistsError as e:
            raise ConfigurationError(f"Workspace already exists: {path}") from e

        slug = _NAME_UNSAFE.sub("-", f"{pipeline}-{run_id}".lower()).strip("-")
        logger.info(f"Allocated workspace {path}")
        return Workspace(run_id=run_id, path=path, container_name=slug)

    async def prepare(
        self,
        workspace: Workspace,
        url: str | None = None,
        path: str | None = None,
        ref: str = "main",
        commit: str | None = None,
    ) -> Workspace:
        """Populate the workspace from a git repository or a local directory.

        Returns:
            The workspace with the checked out commit when cloned from git

        """
        if path:
            source = Path(path)
            if not source.is_dir():
                raise ConfigurationError(f"Source directory not found: {source}")
            logger.info(f"Copying {source} into {workspace.path}")
            await asyncio.to_thread(
                shutil.copytree, source, workspace.path, dirs_exist_ok=True
            )
            return workspace

        if not url:
            raise ConfigurationError("No source url or path to check out")

        logger.info(f"Cloning {url} ({ref}) into {workspace.path}")
        await self.invoker.check(
            ["git", "clone", "--branch", ref, url, "."], workspace.path
        )
        if commit:
            await self.invoker.check(["git", "checkout", commit], workspace.path)

        result = await self.invoker.check(["git", "rev-parse", "HEAD"], workspace.path)
        resolved = result.stdout.strip()
        if not resolved:
            raise ToolInvocationError("git rev-parse returned no commit")
        logger.info(f"Checked out commit {resolved}")
        return workspace.model_copy(update={"commit": resolved})

    async def release(self, workspace: Workspace) -> None:
        """Remove the workspace directory unless configured to keep it."""
        if self.keep:
            logger.info(f"Keeping workspace {workspace.path}")
            return
        await asyncio.to_thread(shutil.rmtree, workspace.path, ignore_errors=True)
        logger.info(f"Removed workspace {workspace.path}")
