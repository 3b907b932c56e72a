"""Uniform interface for invoking external tools."""

import asyncio
import logging
import os
from collections.abc import Collection, Mapping, Sequence
from pathlib import Path

from pydantic import BaseModel, Field

from boostsec.delivery_pipeline.errors import StageTimeoutError, ToolInvocationError

logger = logging.getLogger(__name__)


class InvocationResult(BaseModel):
    """Outcome of one external tool invocation."""

    exit_code: int = Field(..., description="Process exit code")
    stdout: str = Field(default="", description="Decoded standard output")
    stderr: str = Field(default="", description="Decoded standard error")
    output_files: list[str] = Field(
        default_factory=list, description="Declared output files that exist"
    )

    @property
    def succeeded(self) -> bool:
        """Return True when the process exited with code 0."""
        return self.exit_code == 0


class ToolInvoker:
    """Run external commands as subprocesses of the pipeline."""

    def __init__(self, masked_env: Collection[str] = ()) -> None:
        """Initialize invoker.

        Args:
            masked_env: Variables of the current environment that child
                processes do not inherit; they only see them when passed in env

        """
        self.masked_env = set(masked_env)

    async def invoke(
        self,
        command: Sequence[str],
        workdir: Path,
        env: Mapping[str, str] | None = None,
        stdin: str | None = None,
        output_files: Sequence[str] = (),
        timeout: float | None = None,
    ) -> InvocationResult:
        """Run command in workdir and capture its output.

        Args:
            command: Program and arguments
            workdir: Working directory of the process
            env: Extra environment variables merged over the current environment,
                minus the masked variables
            stdin: Text written to the process standard input
            output_files: Files the command is expected to write, relative to
                workdir
            timeout: Seconds before the process is killed

        Returns:
            Exit code, captured output and the declared files that exist

        Raises:
            ToolInvocationError: If the program cannot be started
            StageTimeoutError: If the process exceeds the timeout

        """
        logger.info(f"Running: {' '.join(command)}", extra={"workdir": str(workdir)})

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=workdir,
                env={**self._inherited_env(), **(env or {})},
                stdin=asyncio.subprocess.PIPE if stdin is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ToolInvocationError(f"Failed to start {command[0]}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(stdin.encode() if stdin is not None else None),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            await _terminate(process)
            raise StageTimeoutError(
                f"{command[0]} did not complete within {timeout} seconds"
            ) from None
        except asyncio.CancelledError:
            await _terminate(process)
            raise

        exit_code = process.returncode if process.returncode is not None else -1
        if exit_code != 0:
            logger.warning(f"{command[0]} exited with code {exit_code}")

        return InvocationResult(
            exit_code=exit_code,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
            output_files=[
                str(workdir / name)
                for name in output_files
                if (workdir / name).exists()
            ],
        )

    async def check(
        self,
        command: Sequence[str],
        workdir: Path,
        env: Mapping[str, str] | None = None,
        stdin: str | None = None,
        allowed_exit_codes: Sequence[int] = (0,),
    ) -> InvocationResult:
        """Run command and raise ToolInvocationError on a disallowed exit code."""
        result = await self.invoke(command, workdir, env=env, stdin=stdin)
        if result.exit_code not in allowed_exit_codes:
            raise ToolInvocationError(
                f"{command[0]} exited with code {result.exit_code}: "
                f"{result.stderr.strip()[-500:]}",
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    def _inherited_env(self) -> dict[str, str]:
        return {
            key: value
            for key, value in os.environ.items()
            if key not in self.masked_env
        }


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """Kill a running process and reap it."""
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:  # pragma: no cover
        return
    await process.wait()
    logger.warning(f"Killed process {process.pid}")
