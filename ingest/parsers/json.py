from __future__ import annotations

import json


def _walk(doc: object, result_path: str) -> object:
    current = doc
    for part in result_path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return None
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def parse_json_records(data: bytes, result_path: str | None = None) -> list[dict]:
    doc = json.loads(data)
    if result_path:
        found = _walk(doc, result_path)
        records = found if isinstance(found, list) else []
    elif isinstance(doc, list):
        records = doc
    elif isinstance(doc, dict):
        records = []
        for key in ("items", "events"):
            value = doc.get(key)
            if isinstance(value, list):
                records = value
                break
    else:
        records = []
    return [r for r in records if isinstance(r, dict)]
