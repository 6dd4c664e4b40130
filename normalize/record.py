from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


UNTITLED = "Untitled Event"
DEFAULT_CATEGORY = "Event"

_TITLE_WHITESPACE_RE = re.compile(r"\s+")
_TITLE_PUNCT_RE = re.compile(r"[^\w\s]+", flags=re.UNICODE)
_SLUG_RE = re.compile(r"[^a-z0-9]+")

_TRACKING_PARAM_NAMES = {
    "fbclid",
    "gclid",
    "mc_cid",
    "mc_eid",
    "mkt_tok",
}


@dataclass
class EventRecord:
    id: str
    title: str
    source: str
    start_date: str | None = None
    end_date: str | None = None
    location: str | None = None
    description: str | None = None
    source_url: str | None = None
    country: str | None = None
    city: str | None = None
    lat: float | None = None
    lng: float | None = None
    category: str = DEFAULT_CATEGORY
    raw: dict = field(default_factory=dict)

    def has_coords(self) -> bool:
        return self.lat is not None and self.lng is not None

    def to_output(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "start": self.start_date,
            "category": self.category or DEFAULT_CATEGORY,
            "country": self.country,
            "city": self.city,
            "lat": self.lat,
            "lng": self.lng,
            "url": self.source_url,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "location": self.location,
            "description": self.description,
            "sourceUrl": self.source_url,
            "source": self.source,
            "country": self.country,
            "city": self.city,
            "lat": self.lat,
            "lng": self.lng,
            "category": self.category,
            "raw": self.raw,
        }


def normalize_title(title: str) -> str:
    normalized = title.strip().casefold()
    normalized = _TITLE_PUNCT_RE.sub(" ", normalized)
    normalized = _TITLE_WHITESPACE_RE.sub(" ", normalized).strip()
    return normalized


def canonical_url_key(url: str) -> str:
    """Comparison key for source URLs.

    Case, surrounding whitespace, fragments, tracking parameters, query
    order and a trailing slash are not significant. The key is only used
    for matching; records keep the URL as published.
    """
    parts = urlsplit(url.strip().casefold())
    kept_params: list[tuple[str, str]] = []
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        if key.startswith("utm_"):
            continue
        if key in _TRACKING_PARAM_NAMES:
            continue
        kept_params.append((key, value))

    return urlunsplit(
        (
            parts.scheme,
            parts.netloc,
            parts.path.rstrip("/"),
            urlencode(sorted(kept_params), doseq=True),
            "",
        )
    )


def _sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def make_event_id(
    source_id: str,
    *,
    title: str | None,
    source_url: str | None,
    start: str | None,
) -> str:
    if source_url and source_url.strip():
        seed = f"{source_id}|url|{canonical_url_key(source_url)}"
    else:
        seed = f"{source_id}|title|{normalize_title(title or '')}|{start or ''}"
    slug = _SLUG_RE.sub("-", source_id.casefold()).strip("-") or "event"
    return f"{slug}-{_sha256_hex(seed)[:16]}"


def dedupe_key(record: EventRecord) -> tuple[str, str]:
    if record.source_url and record.source_url.strip():
        return (record.source, canonical_url_key(record.source_url))
    return ("id", record.id)
