import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

from tfplugin.core.config import Config
from tfplugin.core.errors import CertificateError, CredentialError
from tfplugin.core.environment import EnvironmentOverlay
from tfplugin.core.executor import PipelineState
from tfplugin.core.plugin import Plugin
from tfplugin.trace.trace_emitter import TraceEmitter
from tfplugin.trace.trace_store_jsonl import TraceStoreJSONL


class RecordingRunner:
    def __init__(self, fail_at=None):
        self.calls = []
        self._fail_at = fail_at

    def __call__(self, argv, **kwargs):
        self.calls.append((list(argv), kwargs))
        code = 1 if self._fail_at == len(self.calls) - 1 else 0
        return SimpleNamespace(returncode=code)


class TestPlugin(unittest.TestCase):
    def test_plan_only_scenario(self) -> None:
        runner = RecordingRunner()
        cfg = Config(plan=True, vars={"region": "us-east-1"}, destroy=False)
        with redirect_stdout(io.StringIO()):
            result = Plugin(cfg, runner=runner).exec(environ={})
        self.assertEqual(result.state, PipelineState.COMPLETED)
        self.assertEqual(
            [c[0] for c in runner.calls],
            [
                ["terraform", "version"],
                ["rm", "-rf", ".terraform"],
                ["terraform", "init", "-input=false"],
                ["terraform", "get"],
                ["terraform", "validate", "-var", "region=us-east-1"],
                ["terraform", "plan", "-out=plan.tfout", "-var", "region=us-east-1"],
                ["rm", "-rf", ".terraform"],
            ],
        )

    def test_first_command_failure_skips_cache_clear(self) -> None:
        runner = RecordingRunner(fail_at=0)
        with redirect_stdout(io.StringIO()):
            result = Plugin(Config(), runner=runner).exec(environ={})
        self.assertEqual(len(runner.calls), 1)
        self.assertEqual(result.state, PipelineState.ABORTED)
        self.assertEqual(result.failure.stage, "version")

    def test_role_failure_runs_nothing(self) -> None:
        runner = RecordingRunner()
        err = CredentialError(code="role.assume_failed", message="Error assuming role!")
        with patch("tfplugin.core.plugin.assume_role", side_effect=err) as m_assume, patch(
            "tfplugin.core.plugin.build_commands"
        ) as m_build:
            result = Plugin(Config(role_arn="arn:aws:iam::123456789012:role/deploy"), runner=runner).exec(environ={})
        m_assume.assert_called_once()
        m_build.assert_not_called()
        self.assertEqual(runner.calls, [])
        self.assertEqual(result.state, PipelineState.ABORTED)
        self.assertEqual(result.failure.stage, "assume-role")
        self.assertIn("role.assume_failed", result.failure.cause)

    def test_role_credentials_reach_commands(self) -> None:
        runner = RecordingRunner()
        creds = EnvironmentOverlay({"AWS_ACCESS_KEY_ID": "AK", "AWS_SECRET_ACCESS_KEY": "SK", "AWS_SESSION_TOKEN": "ST"})
        with patch("tfplugin.core.plugin.assume_role", return_value=creds), redirect_stdout(io.StringIO()):
            Plugin(Config(plan=True, role_arn="arn:aws:iam::123456789012:role/deploy"), runner=runner).exec(
                environ={"PATH": "/bin"}
            )
        for _, kwargs in runner.calls:
            self.assertEqual(kwargs["env"]["AWS_SESSION_TOKEN"], "ST")
            self.assertEqual(kwargs["env"]["PATH"], "/bin")

    def test_environment_bridge_and_secrets_reach_commands(self) -> None:
        runner = RecordingRunner()
        cfg = Config(plan=True, secrets={"db_password": "hunter2"})
        buf = io.StringIO()
        with redirect_stdout(buf):
            Plugin(cfg, runner=runner).exec(environ={"TF_VAR_REGION": "us-east-1"})
        env = runner.calls[0][1]["env"]
        self.assertEqual(env["TF_VAR_REGION"], "us-east-1")
        self.assertEqual(env["TF_VAR_region"], "us-east-1")
        self.assertEqual(env["TF_VAR_db_password"], "hunter2")
        self.assertNotIn("hunter2", buf.getvalue())

    def test_cacert_written_then_refreshed(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cert_path = Path(td) / "ca_cert.crt"
            runner = RecordingRunner()
            with redirect_stdout(io.StringIO()):
                result = Plugin(Config(plan=True, cacert="PEM DATA"), runner=runner, cacert_path=cert_path).exec(environ={})
            self.assertTrue(result.ok)
            self.assertEqual(cert_path.read_text(encoding="utf-8"), "PEM DATA")
            self.assertEqual(runner.calls[1][0], ["update-ca-certificates"])

    def test_cacert_write_failure_aborts(self) -> None:
        runner = RecordingRunner()
        err = CertificateError(code="cacert.write_failed", message="Failed to write CA certificate")
        with patch("tfplugin.core.plugin.install_ca_cert", side_effect=err):
            result = Plugin(Config(cacert="PEM"), runner=runner).exec(environ={})
        self.assertEqual(runner.calls, [])
        self.assertEqual(result.failure.stage, "install-cacert")

    def test_trace_records_pre_pipeline_abort(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            trace_path = Path(td) / "trace.jsonl"
            trace = TraceEmitter(store=TraceStoreJSONL(trace_path), run_id="run_role")
            err = CredentialError(code="role.assume_failed", message="Error assuming role!")
            with patch("tfplugin.core.plugin.assume_role", side_effect=err):
                Plugin(Config(role_arn="arn:aws:iam::123456789012:role/x"), trace=trace).exec(environ={})
            events = [json.loads(l) for l in trace_path.read_text(encoding="utf-8").splitlines() if l.strip()]
            self.assertEqual([e["event_type"] for e in events], ["run_started", "stage_failed", "run_aborted"])


if __name__ == "__main__":
    unittest.main()
