"""Stage running an arbitrary command in the workspace."""

from boostsec.delivery_pipeline.context import RunContext
from boostsec.delivery_pipeline.errors import ToolInvocationError
from boostsec.delivery_pipeline.invoker import InvocationResult
from boostsec.delivery_pipeline.models.pipeline_config import CommandStageConfig
from boostsec.delivery_pipeline.stages.base import Stage, StageOutcome


class CommandStage(Stage):
    """Runs the configured command and captures declared output files."""

    config: CommandStageConfig

    def __init__(self, config: CommandStageConfig) -> None:
        """Initialize stage from its configuration."""
        super().__init__(config)

    def environment(self, context: RunContext) -> dict[str, str]:
        """Build the process environment for the command."""
        env = {
            f"PIPELINE_{key.upper()}": value
            for key, value in context.placeholders().items()
        }
        env.update(self.config.env)
        env.update(context.credential_env(self.config.credentials))
        return env

    async def run_command(self, context: RunContext) -> InvocationResult:
        """Run the command, raising on a disallowed exit code.

        Raises:
            ToolInvocationError: If the exit code is not allowed

        """
        command = context.render(self.config.command)
        result = await context.invoker.invoke(
            command,
            context.workspace.path,
            env=self.environment(context),
            output_files=context.render(self.config.output_files),
        )
        if result.exit_code not in self.config.allowed_exit_codes:
            raise ToolInvocationError(
                f"{command[0]} exited with code {result.exit_code}",
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    async def execute(self, context: RunContext) -> StageOutcome:
        """Run the command."""
        result = await self.run_command(context)
        return StageOutcome(
            stdout=result.stdout,
            stderr=result.stderr,
            artifacts=result.output_files,
            details={"exit_code": result.exit_code},
        )
