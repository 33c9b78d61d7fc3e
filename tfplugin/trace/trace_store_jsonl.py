from __future__ import annotations

import json
from pathlib import Path
from typing import Any

# one line per event, keys always in this order; unknown keys follow
EVENT_FIELDS = ("ts", "run_id", "event_type", "stage", "message", "data")
_REQUIRED = ("run_id", "event_type")


class TraceStoreJSONL:
    """
    Append-only JSONL file of pipeline events.

    Several runs may share one file; `run_id` tells them apart.
    """

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def append(self, event: dict[str, Any]) -> None:
        missing = [k for k in _REQUIRED if not event.get(k)]
        if missing:
            raise ValueError(f"trace event is missing {', '.join(missing)}")

        line = {k: event[k] for k in EVENT_FIELDS if k in event}
        line.update((k, v) for k, v in event.items() if k not in line)

        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as f:
            # default=str: stage and pipeline states are str enums
            f.write(json.dumps(line, ensure_ascii=False, default=str) + "\n")
