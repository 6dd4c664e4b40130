from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from normalize.record import EventRecord


def write_json_atomic(path: Path, payload: object) -> None:
    """Write JSON to ``path`` so readers never observe a partial file.

    The document is written to a sibling temp file, fsynced and then moved
    over the destination with ``os.replace``.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    data = json.dumps(payload, ensure_ascii=False, indent=2) + "\n"

    tmp = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    )
    tmp_path = Path(tmp.name)
    try:
        with tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def write_events(path: Path, events: list[EventRecord]) -> None:
    write_json_atomic(path, [ev.to_output() for ev in events])


def write_upcoming(path: Path, events: list[EventRecord], *, generated_at: str) -> None:
    write_json_atomic(
        path,
        {
            "generatedAt": generated_at,
            "count": len(events),
            "events": [ev.to_dict() for ev in events],
        },
    )
