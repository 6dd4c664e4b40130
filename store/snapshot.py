from __future__ import annotations

import json
import logging
from pathlib import Path


logger = logging.getLogger(__name__)

ALL = "all"


def load_snapshot(path: Path) -> list[dict]:
    try:
        doc = json.loads(path.read_bytes())
    except FileNotFoundError:
        logger.warning("no event snapshot at %s", path)
        return []
    except (OSError, ValueError) as e:
        logger.warning("unreadable event snapshot %s: %s", path, e)
        return []
    if not isinstance(doc, list):
        logger.warning("event snapshot %s is not a list", path)
        return []
    return [ev for ev in doc if isinstance(ev, dict)]


def _is_unset(value: str | None) -> bool:
    return not value or value == ALL


def filter_events(
    events: list[dict],
    *,
    country: str | None = ALL,
    category: str | None = ALL,
    month: str | None = ALL,
) -> list[dict]:
    month_prefix = None if _is_unset(month) else str(month)[:7]
    matched: list[dict] = []
    for ev in events:
        if not _is_unset(country) and ev.get("country") != country:
            continue
        if not _is_unset(category) and ev.get("category") != category:
            continue
        if month_prefix is not None and not str(ev.get("start") or "").startswith(
            month_prefix
        ):
            continue
        matched.append(ev)
    return matched


def filter_options(events: list[dict]) -> dict[str, list[str]]:
    countries = {str(ev["country"]) for ev in events if ev.get("country")}
    categories = {str(ev["category"]) for ev in events if ev.get("category")}
    months = {
        str(ev["start"])[:7]
        for ev in events
        if isinstance(ev.get("start"), str) and len(ev["start"]) >= 7
    }
    return {
        "countries": sorted(countries),
        "categories": sorted(categories),
        "months": sorted(months),
    }
