from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from .commands import Command
from .config import Config
from .environment import EnvironmentOverlay
from ..trace.trace_emitter import TraceEmitter

logger = logging.getLogger(__name__)

Runner = Callable[..., Any]


class StageState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PipelineState(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class StageSuccess:
    stage: str


@dataclass(frozen=True)
class StageFailure:
    stage: str
    cause: str
    exit_code: Optional[int] = None
    command: Optional[str] = None


StageResult = Union[StageSuccess, StageFailure]


@dataclass
class PipelineResult:
    state: PipelineState
    results: List[StageResult] = field(default_factory=list)
    stage_states: List[StageState] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state == PipelineState.COMPLETED

    @property
    def failure(self) -> Optional[StageFailure]:
        for r in self.results:
            if isinstance(r, StageFailure):
                return r
        return None

    @classmethod
    def aborted_before_start(cls, failure: StageFailure) -> "PipelineResult":
        return cls(state=PipelineState.ABORTED, results=[failure])


def resolve_workdir(command: Command, root_dir: str = "") -> str:
    base = command.cwd or os.getcwd()
    if root_dir:
        return os.path.join(base, root_dir.lstrip("/"))
    return base


def trace_line(command: Command) -> str:
    return f"$ {command.display()}"


class Executor:
    """
    Runs stage commands one at a time, first to last, and stops at the first failure.

    stdout/stderr are inherited so terraform's own output reaches the CI log.
    `runner` must accept the same arguments as `subprocess.run`.
    """

    def __init__(self, trace: TraceEmitter, runner: Optional[Runner] = None):
        self._trace = trace
        self._runner = runner or subprocess.run

    def execute(
        self,
        config: Config,
        commands: Sequence[Command],
        overlay: EnvironmentOverlay,
        environ: Optional[Mapping[str, str]] = None,
    ) -> PipelineResult:
        env = overlay.apply_to(os.environ if environ is None else environ)
        result = PipelineResult(
            state=PipelineState.RUNNING,
            stage_states=[StageState.PENDING for _ in commands],
        )

        for i, cmd in enumerate(commands):
            cwd = resolve_workdir(cmd, config.root_dir)
            if not config.sensitive:
                print(trace_line(cmd), flush=True)

            data = {"cwd": cwd} if config.sensitive else {"argv": cmd.argv, "cwd": cwd}
            self._trace.emit("stage_started", stage=cmd.name, data=data)
            result.stage_states[i] = StageState.RUNNING

            outcome = self._run_one(cmd, cwd, env, config.sensitive)
            result.results.append(outcome)

            if isinstance(outcome, StageFailure):
                result.stage_states[i] = StageState.FAILED
                result.state = PipelineState.ABORTED
                logger.error(
                    "Failed to execute a command (stage=%s, exit_code=%s): %s",
                    outcome.stage,
                    outcome.exit_code,
                    outcome.cause,
                )
                self._trace.emit(
                    "stage_failed",
                    stage=cmd.name,
                    message=outcome.cause,
                    data={"exit_code": outcome.exit_code},
                )
                self._trace.emit("run_aborted", stage=cmd.name, message="Pipeline aborted")
                return result

            result.stage_states[i] = StageState.SUCCEEDED
            logger.debug("Command completed successfully (stage=%s)", cmd.name)
            self._trace.emit("stage_finished", stage=cmd.name)

        result.state = PipelineState.COMPLETED
        self._trace.emit("run_finished", message="Pipeline completed", data={"stages": len(commands)})
        return result

    def _run_one(self, cmd: Command, cwd: str, env: Mapping[str, str], sensitive: bool) -> StageResult:
        shown = None if sensitive else cmd.display()
        try:
            proc = self._runner(cmd.argv, cwd=cwd, env=dict(env), check=False)
        except (OSError, ValueError) as e:
            # ValueError: an argument or env value the OS refuses, e.g. an embedded NUL
            return StageFailure(stage=cmd.name, cause=f"failed to launch {cmd.program}: {e}", exit_code=None, command=shown)

        code = proc.returncode
        if code != 0:
            return StageFailure(stage=cmd.name, cause=f"{cmd.program} exited with status {code}", exit_code=code, command=shown)
        return StageSuccess(stage=cmd.name)
