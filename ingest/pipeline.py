from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

import httpx

from app.settings import Settings
from geo.coords import resolve_coords
from geo.countries import country_name
from health.health import SourceOutcome, describe_error, summarize_outcomes
from ingest.fetchers import FetchError, fetch_raw_items
from ingest.sources import SourceDescriptor, load_sources, require_credentials
from normalize.dates import (
    add_months,
    is_canonical_instant,
    normalize_date,
    parse_instant,
    to_iso,
)
from normalize.record import EventRecord, dedupe_key
from normalize.transforms import TRANSFORMS, run_transform
from store.writer import write_events, write_upcoming


logger = logging.getLogger(__name__)


class RunState(Enum):
    IDLE = "idle"
    LOADING_SOURCES = "loading_sources"
    FETCHING = "fetching"
    TRANSFORMING = "transforming"
    DEDUPLICATING = "deduplicating"
    DATE_NORMALIZING = "date_normalizing"
    GEOCODE_FILLING = "geocode_filling"
    HORIZON_FILTERING = "horizon_filtering"
    WRITING = "writing"
    DONE = "done"


@dataclass
class PipelineResult:
    outcomes: list[SourceOutcome] = field(default_factory=list)
    events: list[EventRecord] = field(default_factory=list)
    upcoming: list[EventRecord] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)
    state: RunState = RunState.IDLE


def backfill_location(events: list[EventRecord], source: SourceDescriptor) -> None:
    country = country_name(source.country)
    for ev in events:
        if not ev.country and country:
            ev.country = country
        if not ev.city and source.region:
            ev.city = source.region


async def _fetch_and_transform(
    client: httpx.AsyncClient,
    source: SourceDescriptor,
    *,
    user_agent: str,
    environ: Mapping[str, str] | None,
    now: datetime | None,
) -> tuple[int, list[EventRecord]]:
    raw_items = await fetch_raw_items(
        client, source, user_agent=user_agent, environ=environ
    )
    if not raw_items:
        logger.warning("%s: no items found at %s", source.source_id, source.url)
    events = await run_transform(source, raw_items, now=now)
    return len(raw_items), events


async def run_source(
    client: httpx.AsyncClient,
    source: SourceDescriptor,
    *,
    settings: Settings,
    semaphore: asyncio.Semaphore,
    environ: Mapping[str, str] | None = None,
    now: datetime | None = None,
) -> SourceOutcome:
    async with semaphore:
        started = time.monotonic()
        error = None
        try:
            raw_count, events = await asyncio.wait_for(
                _fetch_and_transform(
                    client,
                    source,
                    user_agent=settings.user_agent,
                    environ=environ,
                    now=now,
                ),
                timeout=settings.source_timeout_seconds,
            )
        except (TimeoutError, httpx.TimeoutException):
            error = "timeout"
        except httpx.RequestError as e:
            error = f"request_error:{e.__class__.__name__}"
        except FetchError as e:
            error = str(e)
        except Exception as e:
            error = describe_error(e)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        if error is not None:
            logger.warning("source %s failed: %s", source.source_id, error)
            return SourceOutcome.failure(
                source.source_id, error, elapsed_ms=elapsed_ms
            )

        backfill_location(events, source)
        logger.info(
            "%s: got %d raw, %d normalized", source.source_id, raw_count, len(events)
        )
        return SourceOutcome.success(
            source.source_id, events, raw_count=raw_count, elapsed_ms=elapsed_ms
        )


async def collect_events(
    sources: list[SourceDescriptor],
    *,
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    environ: Mapping[str, str] | None = None,
    now: datetime | None = None,
) -> list[SourceOutcome]:
    enabled = [s for s in sources if s.enabled]
    semaphore = asyncio.Semaphore(settings.concurrency)

    async def gather_all(c: httpx.AsyncClient) -> list[SourceOutcome]:
        tasks = [
            run_source(
                c,
                s,
                settings=settings,
                semaphore=semaphore,
                environ=environ,
                now=now,
            )
            for s in enabled
        ]
        return list(await asyncio.gather(*tasks))

    if client is not None:
        return await gather_all(client)
    async with httpx.AsyncClient(follow_redirects=True) as own_client:
        return await gather_all(own_client)


def dedupe_events(events: list[EventRecord]) -> list[EventRecord]:
    seen: set[tuple[str, str]] = set()
    deduped: list[EventRecord] = []
    for ev in events:
        key = dedupe_key(ev)
        if key in seen:
            continue
        seen.add(key)
        deduped.append(ev)
    return deduped


def normalize_dates(
    events: list[EventRecord],
    *,
    now: datetime,
    timezones: Mapping[str, str] | None = None,
) -> None:
    for ev in events:
        tz = (timezones or {}).get(ev.source, "UTC")
        if ev.start_date:
            ev.start_date = normalize_date(ev.start_date, now=now, tz=tz)
        if ev.end_date:
            ev.end_date = normalize_date(ev.end_date, now=now, tz=tz)


def fill_coordinates(events: list[EventRecord]) -> int:
    filled = 0
    for ev in events:
        if ev.has_coords():
            continue
        coords = resolve_coords(ev.city, ev.country)
        if coords is None:
            continue
        ev.lat, ev.lng = coords
        filled += 1
    return filled


def is_publishable(ev: EventRecord) -> bool:
    return is_canonical_instant(ev.start_date) and ev.has_coords()


def within_horizon(ev: EventRecord, *, now: datetime, months: int) -> bool:
    start = parse_instant(ev.start_date)
    if start is None:
        return False
    return now <= start <= add_months(now, months)


def _enter(result: PipelineResult, state: RunState) -> None:
    logger.debug("pipeline: %s -> %s", result.state.value, state.value)
    result.state = state


async def run_pipeline(
    settings: Settings,
    *,
    sources: list[SourceDescriptor] | None = None,
    client: httpx.AsyncClient | None = None,
    now: datetime | None = None,
    environ: Mapping[str, str] | None = None,
) -> PipelineResult:
    result = PipelineResult()
    now = now or datetime.now(tz=UTC)

    _enter(result, RunState.LOADING_SOURCES)
    if sources is None:
        sources = load_sources(Path(settings.sources_file), set(TRANSFORMS))
    require_credentials(sources, environ)
    logger.info(
        "fetching from %d sources (concurrency=%d)",
        sum(1 for s in sources if s.enabled),
        settings.concurrency,
    )

    # Each source is fetched and transformed inside its own concurrency slot.
    _enter(result, RunState.FETCHING)
    result.outcomes = await collect_events(
        sources, settings=settings, client=client, environ=environ, now=now
    )

    _enter(result, RunState.TRANSFORMING)
    collected = [ev for outcome in result.outcomes for ev in outcome.events]

    _enter(result, RunState.DEDUPLICATING)
    deduped = dedupe_events(collected)

    _enter(result, RunState.DATE_NORMALIZING)
    normalize_dates(
        deduped, now=now, timezones={s.source_id: s.timezone for s in sources}
    )

    _enter(result, RunState.GEOCODE_FILLING)
    filled = fill_coordinates(deduped)
    result.events = [ev for ev in deduped if is_publishable(ev)]

    _enter(result, RunState.HORIZON_FILTERING)
    result.upcoming = [
        ev
        for ev in deduped
        if within_horizon(ev, now=now, months=settings.horizon_months)
    ]

    _enter(result, RunState.WRITING)
    write_events(settings.events_path, result.events)
    write_upcoming(settings.upcoming_path, result.upcoming, generated_at=to_iso(now))

    result.counts = {
        **summarize_outcomes(result.outcomes),
        "deduplicated": len(deduped),
        "with_dates": sum(
            1 for ev in deduped if is_canonical_instant(ev.start_date)
        ),
        "coords_filled": filled,
        "with_coords": sum(1 for ev in deduped if ev.has_coords()),
        "written": len(result.events),
        "upcoming": len(result.upcoming),
    }
    _enter(result, RunState.DONE)
    logger.info(
        "pipeline summary: %s",
        " ".join(f"{k}={v}" for k, v in result.counts.items()),
    )
    logger.info("wrote %d events to %s", len(result.events), settings.events_path)
    logger.info(
        "wrote %d upcoming (%d months) to %s",
        len(result.upcoming),
        settings.horizon_months,
        settings.upcoming_path,
    )
    return result
