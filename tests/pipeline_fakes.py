"""Test doubles shared by the unit tests."""

from collections.abc import Mapping, Sequence
from pathlib import Path

from boostsec.delivery_pipeline.context import Credential, RunContext
from boostsec.delivery_pipeline.invoker import InvocationResult, ToolInvoker
from boostsec.delivery_pipeline.models.pipeline_config import PipelineConfig
from boostsec.delivery_pipeline.models.pipeline_run import PipelineRun
from boostsec.delivery_pipeline.notifiers.base import Notifier
from boostsec.delivery_pipeline.reports import SeveritySummary
from boostsec.delivery_pipeline.workspace import WorkspaceManager

DIGEST = "sha256:" + "a" * 64


class FakeInvoker(ToolInvoker):
    """Invoker returning scripted results instead of running processes."""

    def __init__(self) -> None:
        """Initialize with no scripted responses; every command succeeds."""
        super().__init__()
        self.calls: list[list[str]] = []
        self.envs: list[dict[str, str]] = []
        self.stdins: list[str | None] = []
        self._responses: list[tuple[str, list[InvocationResult | BaseException]]] = []
        self._files: list[tuple[str, dict[str, str]]] = []

    def respond(
        self, prefix: str, *responses: InvocationResult | BaseException
    ) -> None:
        """Script responses for commands starting with prefix.

        Responses are consumed in order; the last one repeats.
        """
        self._responses.append((prefix, list(responses)))

    def writes(self, prefix: str, files: Mapping[str, str]) -> None:
        """Write files into the workdir when a matching command runs."""
        self._files.append((prefix, dict(files)))

    def commands(self, prefix: str) -> list[list[str]]:
        """Return the recorded calls starting with prefix."""
        return [call for call in self.calls if " ".join(call).startswith(prefix)]

    async def invoke(
        self,
        command: Sequence[str],
        workdir: Path,
        env: Mapping[str, str] | None = None,
        stdin: str | None = None,
        output_files: Sequence[str] = (),
        timeout: float | None = None,
    ) -> InvocationResult:
        """Record the call and return the scripted result."""
        self.calls.append(list(command))
        self.envs.append(dict(env or {}))
        self.stdins.append(stdin)
        line = " ".join(command)

        for prefix, files in self._files:
            if line.startswith(prefix):
                for name, content in files.items():
                    target = workdir / name
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_text(content)

        result = InvocationResult(exit_code=0)
        for prefix, responses in self._responses:
            if line.startswith(prefix) and responses:
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(response, BaseException):
                    raise response
                result = response
                break

        existing = [
            str(workdir / name) for name in output_files if (workdir / name).exists()
        ]
        return result.model_copy(update={"output_files": existing})


class RecordingNotifier(Notifier):
    """Notifier keeping every run it was asked to report."""

    def __init__(self, delivered: bool = True) -> None:
        """Initialize with the delivery result to report."""
        self.delivered = delivered
        self.runs: list[PipelineRun] = []
        self.summaries: list[SeveritySummary | None] = []
        self.messages: list[str] = []

    async def notify(
        self, run: PipelineRun, summary: SeveritySummary | None = None
    ) -> bool:
        """Record the run, then format and send as usual."""
        self.runs.append(run.model_copy(deep=True))
        self.summaries.append(summary)
        return await super().notify(run, summary)

    async def send(self, message: str) -> bool:
        """Record the message."""
        self.messages.append(message)
        return self.delivered


def push_output(tag: str = "latest") -> InvocationResult:
    """Return docker push output carrying a digest."""
    return InvocationResult(
        exit_code=0,
        stdout=f"{tag}: digest: {DIGEST} size: 1234\n",
    )


def make_config(
    tmp_path: Path, stages: list[dict[str, object]], **extra: object
) -> PipelineConfig:
    """Build a pipeline config copying a local source directory."""
    source = tmp_path / "source"
    source.mkdir(exist_ok=True)
    (source / "Dockerfile").write_text("FROM scratch\n")
    data: dict[str, object] = {
        "version": "1.0",
        "name": "sample-app",
        "source": {"path": str(source)},
        "workspace": {"root": str(tmp_path / "workspaces")},
        "stages": stages,
    }
    data.update(extra)
    return PipelineConfig.model_validate(data)


def make_context(
    tmp_path: Path,
    config: PipelineConfig,
    invoker: ToolInvoker | None = None,
    run_id: str = "run-1",
    credentials: dict[str, Credential] | None = None,
) -> RunContext:
    """Build a run context with an allocated workspace."""
    invoker = invoker or FakeInvoker()
    manager = WorkspaceManager(Path(config.workspace.root), invoker=invoker)
    workspace = manager.allocate(config.name, run_id)
    return RunContext(
        run_id=run_id,
        config=config,
        workspace=workspace,
        workspace_manager=manager,
        invoker=invoker,
        credentials=credentials or {},
    )
