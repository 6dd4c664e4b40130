from __future__ import annotations

from datetime import UTC
from email.utils import parsedate_to_datetime

import feedparser


def _to_iso(value: object) -> str | None:
    if not value:
        return None
    try:
        return (
            parsedate_to_datetime(str(value))
            .astimezone(tz=UTC)
            .isoformat()
            .replace("+00:00", "Z")
        )
    except (TypeError, ValueError):
        # Not RFC 2822; leave it for the date normalizer.
        return str(value)


def _entry_coords(entry: dict) -> tuple[float | None, float | None]:
    where = entry.get("where") or {}
    try:
        if where.get("type") == "Point" and where.get("coordinates"):
            # GeoJSON order.
            lng, lat = (float(v) for v in where["coordinates"][:2])
            return lat, lng
        if entry.get("georss_point"):
            lat_str, lon_str = str(entry["georss_point"]).split()[:2]
            return float(lat_str), float(lon_str)
        if entry.get("geo_lat") and entry.get("geo_long"):
            return float(entry["geo_lat"]), float(entry["geo_long"])
    except (TypeError, ValueError):
        pass
    return None, None


def parse_feed(data: bytes) -> list[dict]:
    parsed = feedparser.parse(data)
    if parsed.bozo and not parsed.entries:
        raise ValueError(f"unparseable feed: {parsed.get('bozo_exception')}")

    records: list[dict] = []
    for entry in parsed.entries:
        lat, lng = _entry_coords(entry)

        content = None
        if "content" in entry and entry["content"]:
            content = entry["content"][0].get("value")

        categories = [
            str(tag.get("term"))
            for tag in entry.get("tags") or []
            if tag.get("term")
        ]

        records.append(
            {
                "id": entry.get("id") or entry.get("guid") or entry.get("link"),
                "link": entry.get("link"),
                "title": entry.get("title", ""),
                "summary": entry.get("summary", ""),
                "content": content,
                "published": _to_iso(entry.get("published")),
                "updated": _to_iso(entry.get("updated")),
                "start": entry.get("ev_startdate") or entry.get("start"),
                "end": entry.get("ev_enddate") or entry.get("end"),
                "location": entry.get("ev_location") or entry.get("location"),
                "categories": categories,
                "lat": lat,
                "lng": lng,
            }
        )
    return records
