"""Replace the running instance of an application with a new artifact."""

import asyncio
import logging
import os
import re
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from pathlib import Path

from boostsec.delivery_pipeline.errors import DeploymentError, ToolInvocationError
from boostsec.delivery_pipeline.invoker import InvocationResult, ToolInvoker
from boostsec.delivery_pipeline.models.artifact import Artifact
from boostsec.delivery_pipeline.models.pipeline_config import (
    ContainerTargetConfig,
    KubernetesTargetConfig,
)

logger = logging.getLogger(__name__)

_LOCK_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


class DeploymentLock:
    """Exclusive lock file serializing deployments to one target."""

    def __init__(
        self,
        lock_dir: Path,
        target: str,
        timeout: float = 600,
        poll_interval: float = 1,
    ) -> None:
        """Initialize lock for a target name."""
        self.path = lock_dir / f"{_LOCK_NAME_UNSAFE.sub('_', target)}.lock"
        self.timeout = timeout
        self.poll_interval = poll_interval

    def _try_acquire(self) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            if not self._is_stale():
                return False
            logger.warning(f"Removing stale deployment lock {self.path}")
            self.path.unlink(missing_ok=True)
            return self._try_acquire()
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        return True

    def _is_stale(self) -> bool:
        """Return True when the process recorded in the lock file is gone."""
        try:
            pid = int(self.path.read_text().strip())
        except (OSError, ValueError):
            # Missing, or created but not yet written by its holder.
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return True
        except PermissionError:
            # Alive, owned by another user.
            return False
        return False

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        """Acquire the lock, waiting up to the timeout, and release it on exit.

        Raises:
            DeploymentError: If the lock is not acquired within the timeout

        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        loop = asyncio.get_running_loop()
        end_time = loop.time() + self.timeout

        while not self._try_acquire():
            if loop.time() >= end_time:
                raise DeploymentError(
                    f"Deployment lock {self.path} not acquired within "
                    f"{self.timeout} seconds"
                )
            logger.info(f"Waiting for deployment lock {self.path}")
            await asyncio.sleep(self.poll_interval)

        logger.info(f"Acquired deployment lock {self.path}")
        try:
            yield
        finally:
            self.path.unlink(missing_ok=True)
            logger.info(f"Released deployment lock {self.path}")


class DeploymentController:
    """Deploys artifacts to a single container or a Kubernetes deployment."""

    def __init__(
        self,
        target: ContainerTargetConfig | KubernetesTargetConfig,
        lock_dir: Path,
        invoker: ToolInvoker | None = None,
        lock_timeout: float = 600,
    ) -> None:
        """Initialize controller for one target."""
        self.target = target
        self.invoker = invoker or ToolInvoker()
        self.lock = DeploymentLock(lock_dir, self.target_name, timeout=lock_timeout)

    @property
    def target_name(self) -> str:
        """Return a stable identifier of the deployment target."""
        if isinstance(self.target, ContainerTargetConfig):
            return f"container-{self.target.container_name}"
        return f"k8s-{self.target.namespace}-{self.target.deployment}"

    async def deploy(
        self,
        artifact: Artifact,
        run_id: str,
        run_artifacts: Sequence[Artifact],
        workdir: Path,
    ) -> str:
        """Replace the running instance with the artifact.

        Args:
            artifact: Artifact to deploy
            run_id: Current run; the artifact must have been produced by it
            run_artifacts: Artifacts published by the current run
            workdir: Working directory for the deployment commands

        Returns:
            Human readable description of the deployed instance

        Raises:
            DeploymentError: If the artifact is foreign to the run or the new
                instance cannot be started

        """
        if artifact.run_id != run_id or artifact not in run_artifacts:
            raise DeploymentError(
                f"Artifact {artifact.reference} was not produced by run {run_id}"
            )

        async with self.lock.hold():
            if isinstance(self.target, ContainerTargetConfig):
                return await self._deploy_container(self.target, artifact, workdir)
            return await self._deploy_kubernetes(self.target, artifact, workdir)

    async def _deploy_container(
        self, target: ContainerTargetConfig, artifact: Artifact, workdir: Path
    ) -> str:
        name = target.container_name
        removal = await self._run(["docker", "rm", "-f", name], workdir)
        if removal.exit_code != 0:
            if "no such container" not in removal.stderr.lower():
                raise DeploymentError(
                    f"Failed to remove {name}: {removal.stderr.strip()}"
                )
            logger.warning(
                f"Previous instance {target.container_name} no longer exists"
            )

        started = await self._run(
            [
                "docker",
                "run",
                "-d",
                "--name",
                target.container_name,
                "-p",
                f"{target.host_port}:{target.container_port}",
                artifact.pinned_reference,
            ],
            workdir,
        )
        if started.exit_code != 0:
            raise DeploymentError(
                f"Failed to start {target.container_name}: {started.stderr.strip()}"
            )

        container_id = started.stdout.strip()[:12]
        logger.info(f"Started {target.container_name} ({container_id})")
        return (
            f"{target.container_name} running {artifact.reference} on port "
            f"{target.host_port}"
        )

    async def _deploy_kubernetes(
        self, target: KubernetesTargetConfig, artifact: Artifact, workdir: Path
    ) -> str:
        base = ["kubectl", "--namespace", target.namespace]
        if target.context:
            base += ["--context", target.context]

        for command in (
            [
                "set",
                "image",
                f"deployment/{target.deployment}",
                f"{target.container}={artifact.pinned_reference}",
            ],
            ["rollout", "status", f"deployment/{target.deployment}"],
        ):
            result = await self._run(base + command, workdir)
            if result.exit_code != 0:
                raise DeploymentError(
                    f"kubectl {command[0]} {command[1]} failed: {result.stderr.strip()}"
                )

        logger.info(f"Rolled out {artifact.reference} to {target.deployment}")
        return f"deployment/{target.deployment} running {artifact.reference}"

    async def _run(self, command: list[str], workdir: Path) -> InvocationResult:
        try:
            return await self.invoker.invoke(command, workdir)
        except ToolInvocationError as e:
            raise DeploymentError(str(e)) from e
