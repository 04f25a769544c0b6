from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, TextIO

EventLog = Callable[[str, Mapping[str, Any]], None]


def log_event(
    event: str,
    payload: Mapping[str, Any],
    log_path: Path | None = None,
    stream: TextIO | None = None,
) -> None:
    record = {
        "event": event,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **payload,
    }
    line = json.dumps(record, default=_json_default)
    print(line, file=stream or sys.stderr)
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")


def null_log(event: str, payload: Mapping[str, Any]) -> None:
    return None


def _json_default(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    if hasattr(value, "__dict__"):
        return value.__dict__
    return str(value)
