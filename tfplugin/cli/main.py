from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from tfplugin.core.config import Config, config_from_env, load_config_file
from tfplugin.core.errors import CommandFailed, PluginError
from tfplugin.core.plugin import Plugin
from tfplugin.trace.replay import Replay
from tfplugin.trace.trace_emitter import TraceEmitter
from tfplugin.trace.trace_store_jsonl import TraceStoreJSONL

logger = logging.getLogger("tfplugin")


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def _debug_requested(args: argparse.Namespace) -> bool:
    if getattr(args, "debug", False):
        return True
    return str(os.environ.get("PLUGIN_DEBUG", "")).strip().lower() in ("1", "true", "yes")


def _load_config(args: argparse.Namespace) -> Config:
    if getattr(args, "config", None):
        return load_config_file(Path(args.config))
    return config_from_env(os.environ)


def _format_cli_error(e: Exception) -> str:
    """
    Print-friendly error formatting for CLI commands.
    - Always includes code/message (via __str__) when it's a PluginError
    - Includes structured `data` payload when present
    """
    if isinstance(e, PluginError) and isinstance(e.data, dict) and e.data:
        return str(e) + "\n" + json.dumps(e.data, ensure_ascii=False, indent=2)
    return str(e)


def cmd_run(args: argparse.Namespace) -> int:
    config = _load_config(args)
    store = TraceStoreJSONL(Path(args.trace)) if args.trace else None
    trace = TraceEmitter(store=store, run_id=args.run_id)

    result = Plugin(config, trace=trace).exec()
    failure = result.failure
    if failure is not None:
        data = {"stage": failure.stage, "exit_code": failure.exit_code, "cause": failure.cause}
        if failure.command:
            data["command"] = failure.command
        raise CommandFailed(code="stage.failed", message=f"Stage '{failure.stage}' failed", data=data)
    return 0


def cmd_commands(args: argparse.Namespace) -> int:
    config = _load_config(args)
    commands = Plugin(config).commands()
    # sensitive: stage names only, argv may carry -var values
    if args.json:
        if config.sensitive:
            out = [{"stage": c.name} for c in commands]
        else:
            out = [{"stage": c.name, "argv": c.argv} for c in commands]
        print(json.dumps(out, ensure_ascii=False, indent=2))
        return 0
    for c in commands:
        print(c.name if config.sensitive else f"{c.name}: {c.display()}")
    return 0


def cmd_show_trace(args: argparse.Namespace) -> int:
    replay = Replay(Path(args.trace))
    if args.last_failure:
        failed = replay.last_failure(run_id=args.run_id)
        events = [failed] if failed is not None else []
    else:
        events = list(replay.iter_events(run_id=args.run_id, stage=args.stage, event_type=args.event_type))

    if args.tail is not None and args.tail >= 0:
        events = events[-args.tail :] if args.tail else []

    for e in events:
        if args.pretty:
            print(json.dumps(e, ensure_ascii=False, indent=2))
        else:
            print(json.dumps(e, ensure_ascii=False))
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="tfplugin", description="Terraform CI plugin")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_run = sub.add_parser("run", help="Run the terraform pipeline")
    p_run.add_argument("--config", help="Path to plugin config YAML (default: PLUGIN_* environment)")
    p_run.add_argument("--trace", help="Trace output path (jsonl)")
    p_run.add_argument("--run-id", default="run_cli", help="Run ID for trace correlation")
    p_run.add_argument("--debug", action="store_true", help="Enable debug logging")
    p_run.set_defaults(func=cmd_run)

    p_cmds = sub.add_parser("commands", help="Print the stage commands without running them")
    p_cmds.add_argument("--config", help="Path to plugin config YAML (default: PLUGIN_* environment)")
    p_cmds.add_argument("--json", action="store_true", help="Output JSON")
    p_cmds.set_defaults(func=cmd_commands)

    p_show_trace = sub.add_parser("show-trace", help="Show trace events from a JSONL file")
    p_show_trace.add_argument("--trace", required=True, help="Trace path (jsonl)")
    p_show_trace.add_argument("--run-id", help="Filter by run_id")
    p_show_trace.add_argument("--stage", help="Filter by stage name")
    p_show_trace.add_argument("--event-type", help="Filter by event_type")
    p_show_trace.add_argument("--last-failure", action="store_true", help="Show only the last stage_failed event")
    p_show_trace.add_argument("--tail", type=int, help="Show only last N events")
    p_show_trace.add_argument("--pretty", action="store_true", help="Pretty-print each event as JSON")
    p_show_trace.set_defaults(func=cmd_show_trace)

    ns = parser.parse_args(argv)
    _setup_logging(_debug_requested(ns))
    try:
        return int(ns.func(ns))
    except Exception as e:  # noqa: BLE001
        logger.error("%s", e)
        print(_format_cli_error(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
