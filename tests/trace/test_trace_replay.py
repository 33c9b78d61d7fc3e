import json
import tempfile
import unittest
from pathlib import Path

from tfplugin.core.executor import StageState
from tfplugin.trace.replay import Replay
from tfplugin.trace.trace_emitter import TraceEmitter
from tfplugin.trace.trace_store_jsonl import TraceStoreJSONL


class TestTraceReplay(unittest.TestCase):
    def test_emit_then_replay(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "nested" / "trace.jsonl"
            trace = TraceEmitter(store=TraceStoreJSONL(path), run_id="run_1")
            trace.emit("stage_started", stage="init", data={"cwd": "/work"})
            trace.emit("run_finished", message="done")

            events = list(Replay(path).iter_events())
            self.assertEqual([e["event_type"] for e in events], ["stage_started", "run_finished"])
            self.assertEqual(events[0]["stage"], "init")
            self.assertEqual(events[0]["data"], {"cwd": "/work"})
            self.assertNotIn("stage", events[1])
            self.assertTrue(events[1]["ts"].endswith("Z"))

    def test_store_writes_fixed_key_order(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "trace.jsonl"
            TraceStoreJSONL(path).append(
                {"data": {"state": StageState.FAILED}, "stage": "plan", "event_type": "stage_failed", "run_id": "r", "ts": "t"}
            )
            line = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(list(line), ["ts", "run_id", "event_type", "stage", "data"])
            self.assertEqual(line["data"], {"state": "failed"})

    def test_store_rejects_event_without_run_id(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "trace.jsonl"
            with self.assertRaises(ValueError):
                TraceStoreJSONL(path).append({"event_type": "run_started"})
            self.assertFalse(path.exists())

    def test_replay_filters_by_run_and_stage(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "trace.jsonl"
            store = TraceStoreJSONL(path)
            first = TraceEmitter(store=store, run_id="run_a")
            second = TraceEmitter(store=store, run_id="run_b")
            first.emit("stage_started", stage="init")
            first.emit("stage_failed", stage="init", message="exit 1")
            second.emit("stage_started", stage="init")
            second.emit("stage_started", stage="plan")
            second.emit("stage_failed", stage="plan", message="exit 2")

            replay = Replay(path)
            self.assertEqual(replay.run_ids(), ["run_a", "run_b"])
            self.assertEqual(len(list(replay.iter_events(run_id="run_b"))), 3)
            init_b = list(replay.iter_events(run_id="run_b", stage="init"))
            self.assertEqual([e["event_type"] for e in init_b], ["stage_started"])
            self.assertEqual(replay.last_failure()["stage"], "plan")
            self.assertEqual(replay.last_failure(run_id="run_a")["message"], "exit 1")
            self.assertIsNone(replay.last_failure(run_id="run_c"))

    def test_missing_file_yields_nothing(self) -> None:
        self.assertEqual(list(Replay(Path("/nonexistent/trace.jsonl")).iter_events()), [])

    def test_emitter_without_store_is_silent(self) -> None:
        TraceEmitter(store=None, run_id="r").emit("run_started")


if __name__ == "__main__":
    unittest.main()
