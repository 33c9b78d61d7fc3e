from .config import Config, InitOptions
from .commands import Command, build_commands
from .environment import EnvironmentOverlay, bridge_tf_vars
from .executor import Executor, PipelineResult, PipelineState, StageFailure, StageSuccess
from .plugin import Plugin

__all__ = [
  "Config",
  "InitOptions",
  "Command",
  "build_commands",
  "EnvironmentOverlay",
  "bridge_tf_vars",
  "Executor",
  "PipelineResult",
  "PipelineState",
  "StageFailure",
  "StageSuccess",
  "Plugin",
]
