from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Any, List, Mapping, Optional

from .certs import CA_CERT_PATH, install_ca_cert
from .commands import Command, build_commands
from .config import Config
from .environment import EnvironmentOverlay, bridge_tf_vars, secrets_overlay
from .errors import CertificateError, CredentialError
from .executor import Executor, PipelineResult, Runner, StageFailure
from .role import assume_role
from ..trace.trace_emitter import TraceEmitter

logger = logging.getLogger(__name__)


class Plugin:
    """
    One plugin run: environment -> certificate -> role -> commands -> execute.

    Hard rules:
    - the process environment is read, never written; spawned commands get an overlay.
    - nothing is constructed or run once a pre-pipeline step has failed.
    - exec() reports failure through the returned PipelineResult; it never exits.
    """

    def __init__(
        self,
        config: Config,
        *,
        trace: Optional[TraceEmitter] = None,
        runner: Optional[Runner] = None,
        sts_client: Optional[Any] = None,
        cacert_path: Path = CA_CERT_PATH,
    ):
        self.config = config
        self._trace = trace or TraceEmitter(store=None, run_id="run")
        self._runner = runner or subprocess.run
        self._sts_client = sts_client
        self._cacert_path = cacert_path

    def commands(self) -> List[Command]:
        return build_commands(self.config)

    def environment(self, environ: Mapping[str, str]) -> EnvironmentOverlay:
        overlay = bridge_tf_vars(environ)
        if self.config.secrets:
            overlay = overlay.merged(secrets_overlay(self.config.secrets))
        return overlay

    def exec(self, environ: Optional[Mapping[str, str]] = None) -> PipelineResult:
        environ = os.environ if environ is None else environ
        cfg = self.config
        self._trace.emit(
            "run_started",
            data={"plan": cfg.plan, "destroy": cfg.destroy, "sensitive": cfg.sensitive},
        )

        overlay = self.environment(environ)

        if cfg.cacert:
            try:
                install_ca_cert(cfg.cacert, self._cacert_path)
            except CertificateError as e:
                return self._abort("install-cacert", e)

        if cfg.role_arn:
            try:
                overlay = overlay.merged(assume_role(cfg.role_arn, client=self._sts_client))
            except CredentialError as e:
                return self._abort("assume-role", e)

        executor = Executor(self._trace, runner=self._runner)
        return executor.execute(cfg, self.commands(), overlay, environ=environ)

    def _abort(self, stage: str, err: Exception) -> PipelineResult:
        failure = StageFailure(stage=stage, cause=str(err))
        logger.error("%s failed: %s", stage, err)
        self._trace.emit("stage_failed", stage=stage, message=str(err))
        self._trace.emit("run_aborted", stage=stage, message="Pipeline aborted before start")
        return PipelineResult.aborted_before_start(failure)
