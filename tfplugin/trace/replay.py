from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

Event = Dict[str, Any]


class Replay:
    """
    Reads a pipeline trace back, optionally narrowed to one run, stage or event type.
    """

    def __init__(self, path: Path):
        self._path = path

    def _read(self) -> Iterator[Event]:
        if not self._path.exists():
            return
        with self._path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                yield json.loads(line)

    def iter_events(
        self,
        *,
        run_id: Optional[str] = None,
        stage: Optional[str] = None,
        event_type: Optional[str] = None,
    ) -> Iterator[Event]:
        for e in self._read():
            if run_id is not None and e.get("run_id") != run_id:
                continue
            if stage is not None and e.get("stage") != stage:
                continue
            if event_type is not None and e.get("event_type") != event_type:
                continue
            yield e

    def run_ids(self) -> List[str]:
        """Run ids in the order their first event was written."""
        seen: List[str] = []
        for e in self._read():
            rid = e.get("run_id")
            if rid and rid not in seen:
                seen.append(rid)
        return seen

    def last_failure(self, run_id: Optional[str] = None) -> Optional[Event]:
        failed = None
        for e in self.iter_events(run_id=run_id, event_type="stage_failed"):
            failed = e
        return failed
