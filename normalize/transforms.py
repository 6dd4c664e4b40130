from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from geo.countries import country_name
from ingest.sources import SourceDescriptor
from normalize.dates import normalize_date
from normalize.record import DEFAULT_CATEGORY, UNTITLED, EventRecord, make_event_id


logger = logging.getLogger(__name__)

TransformFn = Callable[..., Awaitable[EventRecord | None]]

TRANSFORMS: dict[str, TransformFn] = {}


def _register(name: str) -> Callable[[TransformFn], TransformFn]:
    def decorator(fn: TransformFn) -> TransformFn:
        @functools.wraps(fn)
        async def guarded(
            item: dict, *, source: SourceDescriptor, now: datetime | None = None
        ) -> EventRecord | None:
            try:
                return await fn(item, source=source, now=now)
            except Exception as e:
                logger.warning(
                    "transform %s failed for source %s: %s: %s",
                    name,
                    source.source_id,
                    e.__class__.__name__,
                    e,
                )
                return None

        TRANSFORMS[name] = guarded
        return guarded

    return decorator


def _text(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, dict):
        for key in ("text", "name", "value", "utc", "local"):
            if value.get(key):
                value = value[key]
                break
        else:
            return None
    text = " ".join(str(value).split())
    return text or None


def _first(item: dict, *keys: str) -> str | None:
    for key in keys:
        value = _text(item.get(key))
        if value:
            return value
    return None


def _get(value: object, *path: str | int) -> object:
    current = value
    for part in path:
        if isinstance(part, int):
            if not isinstance(current, list) or len(current) <= part:
                return None
            current = current[part]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(part)
    return current


def _float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def build_record(
    item: dict,
    source: SourceDescriptor,
    *,
    title: str | None,
    start: object,
    end: object = None,
    location: str | None = None,
    description: str | None = None,
    url: str | None = None,
    city: str | None = None,
    country: str | None = None,
    category: str | None = None,
    lat: object = None,
    lng: object = None,
    now: datetime | None = None,
) -> EventRecord:
    start_date = normalize_date(start, now=now, tz=source.timezone)
    end_date = normalize_date(end, now=now, tz=source.timezone)
    title = title or UNTITLED
    url = url or None
    return EventRecord(
        id=make_event_id(
            source.source_id, title=title, source_url=url, start=start_date
        ),
        title=title,
        source=source.source_id,
        start_date=start_date,
        end_date=end_date,
        location=location,
        description=description,
        source_url=url,
        country=country or country_name(source.country),
        city=city or source.region,
        lat=_float(lat),
        lng=_float(lng),
        category=category or source.category or DEFAULT_CATEGORY,
        raw=item,
    )


@_register("generic")
async def generic_transform(
    item: dict, *, source: SourceDescriptor, now: datetime | None = None
) -> EventRecord:
    return build_record(
        item,
        source,
        now=now,
        title=_first(item, "title", "name"),
        start=_first(
            item, "date", "time", "datetime", "start", "startDate", "published"
        ),
        end=_first(item, "endDate", "end"),
        location=_first(item, "location", "venue", "place"),
        description=_first(item, "description", "summary"),
        url=_first(item, "link", "url"),
        city=_first(item, "city"),
        country=_first(item, "country"),
        category=_first(item, "category"),
        lat=item.get("lat", item.get("latitude")),
        lng=item.get("lng", item.get("longitude")),
    )


@_register("listing")
async def listing_transform(
    item: dict, *, source: SourceDescriptor, now: datetime | None = None
) -> EventRecord:
    # Listing pages often split the day and the clock time into separate cells.
    date_text = _first(item, "date", "datetime")
    time_text = _first(item, "time")
    if date_text and time_text and time_text not in date_text:
        start = f"{date_text} {time_text}"
    else:
        start = date_text or time_text

    return build_record(
        item,
        source,
        now=now,
        title=_first(item, "title", "name", "headline"),
        start=start,
        end=_first(item, "endDate", "end"),
        location=_first(item, "location", "venue", "place"),
        description=_first(item, "description", "summary"),
        url=_first(item, "link", "url"),
        city=_first(item, "city"),
        category=_first(item, "category"),
    )


@_register("visitstockholm")
async def visitstockholm_transform(
    item: dict, *, source: SourceDescriptor, now: datetime | None = None
) -> EventRecord:
    start = (
        item.get("startDate")
        or item.get("start")
        or item.get("date")
        or _get(item, "dates", 0, "start")
        or _get(item, "occurrences", 0, "start")
    )
    if isinstance(start, dict):
        start = start.get("start")
    end = (
        item.get("endDate")
        or item.get("end")
        or _get(item, "dates", 0, "end")
        or _get(item, "occurrences", 0, "end")
    )

    location_obj = item.get("location")
    if isinstance(location_obj, dict):
        location = (
            _text(location_obj.get("name"))
            or _text(location_obj.get("address"))
            or _text(location_obj.get("city"))
        )
        city = _text(location_obj.get("city"))
        lat = location_obj.get("lat", location_obj.get("latitude"))
        lng = location_obj.get("lng", location_obj.get("longitude"))
    else:
        location = _text(location_obj)
        city = None
        lat = lng = None

    return build_record(
        item,
        source,
        now=now,
        title=_first(item, "title", "name", "headline"),
        start=_text(start),
        end=_text(end),
        location=location or _first(item, "venue", "place"),
        description=_first(item, "description", "summary", "longDescription"),
        url=_first(item, "url", "eventUrl") or _text(_get(item, "links", 0, "href")),
        city=city,
        category=_first(item, "category") or _text(_get(item, "categories", 0)),
        lat=lat,
        lng=lng,
    )


@_register("eventbrite")
async def eventbrite_transform(
    item: dict, *, source: SourceDescriptor, now: datetime | None = None
) -> EventRecord:
    start = _get(item, "start", "utc") or _get(item, "start", "local")
    end = _get(item, "end", "utc") or _get(item, "end", "local")
    if not isinstance(item.get("start"), dict):
        start = item.get("start")
    if not isinstance(item.get("end"), dict):
        end = item.get("end")

    venue = item.get("venue") if isinstance(item.get("venue"), dict) else {}
    return build_record(
        item,
        source,
        now=now,
        title=_text(item.get("name")) or _text(item.get("title")),
        start=_text(start),
        end=_text(end),
        location=_text(venue.get("name")),
        description=_text(item.get("summary")) or _text(item.get("description")),
        url=_text(item.get("url")),
        city=_text(_get(venue, "address", "city")),
        category=_text(_get(item, "category", "name")) or _text(item.get("category")),
        lat=venue.get("latitude"),
        lng=venue.get("longitude"),
    )


@_register("feed")
async def feed_transform(
    item: dict, *, source: SourceDescriptor, now: datetime | None = None
) -> EventRecord:
    categories = item.get("categories") or []
    return build_record(
        item,
        source,
        now=now,
        title=_first(item, "title"),
        start=_first(item, "start", "published", "updated"),
        end=_first(item, "end"),
        location=_first(item, "location"),
        description=_first(item, "summary", "content"),
        url=_first(item, "link"),
        category=_text(categories[0]) if categories else None,
        lat=item.get("lat"),
        lng=item.get("lng"),
    )


def get_transform(name: str | None) -> TransformFn:
    if name is None:
        return TRANSFORMS["generic"]
    return TRANSFORMS[name]


async def run_transform(
    source: SourceDescriptor,
    raw_items: list[dict],
    *,
    now: datetime | None = None,
) -> list[EventRecord]:
    transform = get_transform(source.transform)
    events: list[EventRecord] = []
    for item in raw_items:
        if not isinstance(item, dict):
            logger.warning(
                "source %s: skipping non-mapping item %r", source.source_id, item
            )
            continue
        event = await transform(item, source=source, now=now)
        if event is not None:
            events.append(event)
    return events
