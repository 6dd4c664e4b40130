import asyncio
import json
import logging
from datetime import UTC, datetime
from pathlib import Path

import httpx
import pytest

from app.main import main
from app.settings import Settings
from ingest.pipeline import (
    RunState,
    backfill_location,
    dedupe_events,
    is_publishable,
    run_pipeline,
    within_horizon,
)
from ingest.sources import MissingCredentialError, SourceDescriptor, parse_source
from normalize.record import EventRecord


FIXTURES = Path(__file__).resolve().parent / "fixtures"
NOW = datetime(2025, 12, 1, 12, 0, tzinfo=UTC)

RSS = (FIXTURES / "sample.rss.xml").read_bytes()
LISTING = (FIXTURES / "listing.html").read_bytes()

API_PAYLOAD = {
    "pagination": {"page_count": 1},
    "events": [
        {
            "name": {"text": "Jazz Night"},
            "start": {"utc": "2025-12-24T18:00:00Z"},
            "url": "https://example.com/e/1",
        },
        {
            "name": {"text": "Jazz Night (repost)"},
            "start": {"utc": "2025-12-24T18:00:00Z"},
            "url": " HTTPS://EXAMPLE.COM/e/1/ ",
        },
        {"name": {"text": "Mystery Event"}, "url": "https://example.com/e/3"},
        {
            "name": {"text": "Summer Gala"},
            "start": {"utc": "2027-06-01T18:00:00Z"},
            "url": "https://example.com/e/4",
        },
    ],
}

LISTING_SELECTORS = {
    "item": "li.event-item",
    "title": ".title",
    "date": ".date",
    "time": ".time",
    "link": "a.more@href",
}


def _settings(tmp_path: Path, **overrides: object) -> Settings:
    return Settings().model_copy(
        update={"output_dir": tmp_path / "data", **overrides}
    )


def _sources() -> list[SourceDescriptor]:
    return [
        parse_source(
            {
                "id": "stockholm-api",
                "type": "api",
                "url": "https://api.example.com/v3/events",
                "country": "SE",
                "region": "Stockholm",
                "transform": "eventbrite",
                "result_path": "events",
                "params": {"location": "Stockholm"},
                "auth": {"type": "bearer", "env_var": "EXAMPLE_TOKEN"},
            }
        ),
        parse_source(
            {
                "id": "broken-scrape",
                "type": "scrape",
                "url": "https://broken.example.com/events",
                "selectors": LISTING_SELECTORS,
            }
        ),
        parse_source(
            {
                "id": "oslo-feed",
                "type": "feed",
                "url": "https://feeds.example.org/oslo.xml",
                "country": "NO",
                "region": "Oslo",
                "transform": "feed",
            }
        ),
        parse_source(
            {
                "id": "nowhere-listing",
                "type": "scrape",
                "url": "https://nowhere.example/events/",
                "country": "XX",
                "transform": "listing",
                "selectors": LISTING_SELECTORS,
            }
        ),
    ]


def _handler(request: httpx.Request) -> httpx.Response:
    host = request.url.host
    if host == "api.example.com":
        assert request.headers["Authorization"] == "Bearer abc"
        assert request.url.params["location"] == "Stockholm"
        return httpx.Response(200, json=API_PAYLOAD)
    if host == "broken.example.com":
        return httpx.Response(500, text="oops")
    if host == "feeds.example.org":
        return httpx.Response(200, content=RSS)
    if host == "nowhere.example":
        return httpx.Response(200, content=LISTING)
    return httpx.Response(404)


@pytest.mark.asyncio
async def test_pipeline_end_to_end(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)
    settings = _settings(tmp_path)

    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
        result = await run_pipeline(
            settings,
            sources=_sources(),
            client=client,
            now=NOW,
            environ={"EXAMPLE_TOKEN": "abc"},
        )

    assert result.state is RunState.DONE

    outcomes = {o.source_id: o for o in result.outcomes}
    assert outcomes["broken-scrape"].ok is False
    assert "http_500" in outcomes["broken-scrape"].error
    assert outcomes["broken-scrape"].events == []
    assert outcomes["stockholm-api"].raw_count == 4
    assert outcomes["oslo-feed"].ok is True

    written = json.loads(settings.events_path.read_text(encoding="utf-8"))
    assert [ev["title"] for ev in written] == [
        "Jazz Night",
        "Summer Gala",
        "Python Oslo: Winter Meetup",
        "Harbour Walk",
    ]
    jazz, _gala, meetup, walk = written
    assert jazz["start"] == "2025-12-24T18:00:00Z"
    assert (jazz["country"], jazz["city"]) == ("Sweden", "Stockholm")
    assert (jazz["lat"], jazz["lng"]) == (59.3293, 18.0686)
    assert jazz["url"] == "https://example.com/e/1"
    assert (meetup["lat"], meetup["lng"]) == (59.9139, 10.7522)
    assert meetup["category"] == "Tech"
    assert walk["lat"] == pytest.approx(59.9075)
    assert walk["category"] == "Event"
    assert set(jazz) == {
        "id", "title", "start", "category", "country", "city", "lat", "lng", "url",
    }

    upcoming = json.loads(settings.upcoming_path.read_text(encoding="utf-8"))
    assert upcoming["generatedAt"] == "2025-12-01T12:00:00Z"
    assert upcoming["count"] == 5
    assert "Summer Gala" not in {ev["title"] for ev in upcoming["events"]}
    assert all("raw" in ev for ev in upcoming["events"])

    assert result.counts == {
        "sources_run": 4,
        "sources_failed": 1,
        "raw_items": 9,
        "collected": 9,
        "deduplicated": 8,
        "with_dates": 6,
        "coords_filled": 4,
        "with_coords": 5,
        "written": 4,
        "upcoming": 5,
    }
    assert "pipeline summary" in caplog.text
    assert "source broken-scrape failed" in caplog.text


@pytest.mark.asyncio
async def test_missing_credentials_abort_before_fetching(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected request to {request.url}")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(MissingCredentialError):
            await run_pipeline(
                _settings(tmp_path), sources=_sources(), client=client, environ={}
            )
    assert not (tmp_path / "data").exists()


@pytest.mark.asyncio
async def test_sources_run_with_bounded_concurrency(tmp_path: Path) -> None:
    in_flight = 0
    peak = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.02)
        in_flight -= 1
        return httpx.Response(200, content=RSS)

    sources = [
        parse_source(
            {
                "id": f"feed-{i}",
                "type": "feed",
                "url": f"https://feeds.example.org/{i}.xml",
                "country": "NO",
                "region": "Oslo",
            }
        )
        for i in range(6)
    ]
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await run_pipeline(
            _settings(tmp_path, concurrency=2), sources=sources, client=client, now=NOW
        )

    assert peak == 2
    assert all(o.ok for o in result.outcomes)
    assert result.counts["written"] == 12


@pytest.mark.asyncio
async def test_slow_source_times_out(tmp_path: Path) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "slow.example.org":
            await asyncio.sleep(5)
        return httpx.Response(200, content=RSS)

    sources = [
        parse_source({"id": "slow", "type": "feed", "url": "https://slow.example.org/rss"}),
        parse_source(
            {
                "id": "fast",
                "type": "feed",
                "url": "https://fast.example.org/rss",
                "country": "NO",
                "region": "Oslo",
            }
        ),
    ]
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await run_pipeline(
            _settings(tmp_path, source_timeout_seconds=0.1),
            sources=sources,
            client=client,
            now=NOW,
        )

    outcomes = {o.source_id: o for o in result.outcomes}
    assert outcomes["slow"].error == "timeout"
    assert outcomes["fast"].ok is True
    assert result.counts["written"] == 2


@pytest.mark.asyncio
async def test_network_errors_are_contained(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    sources = [parse_source({"id": "down", "type": "api", "url": "https://down.example/api"})]
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await run_pipeline(
            _settings(tmp_path), sources=sources, client=client, now=NOW
        )

    assert result.outcomes[0].error == "request_error:ConnectError"
    events_path = tmp_path / "data" / "events.json"
    assert json.loads(events_path.read_text(encoding="utf-8")) == []


@pytest.mark.asyncio
async def test_sources_are_loaded_from_settings(tmp_path: Path) -> None:
    config = tmp_path / "sources.yaml"
    config.write_text(
        """
sources:
  - id: oslo-feed
    type: rss
    url: https://feeds.example.org/oslo.xml
    country: NO
    region: Oslo
  - id: switched-off
    type: rss
    url: https://off.example.org/rss
    enabled: false
""",
        encoding="utf-8",
    )
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.host)
        return httpx.Response(200, content=RSS)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await run_pipeline(
            _settings(tmp_path, sources_file=config), client=client, now=NOW
        )

    assert requested == ["feeds.example.org"]
    assert [o.source_id for o in result.outcomes] == ["oslo-feed"]


def test_within_horizon_bounds() -> None:
    def ev(start: str | None) -> EventRecord:
        return EventRecord(id="x", title="x", source="s", start_date=start)

    assert within_horizon(ev("2025-12-01T12:00:00Z"), now=NOW, months=12)
    assert within_horizon(ev("2026-12-01T12:00:00Z"), now=NOW, months=12)
    assert not within_horizon(ev("2026-12-01T12:00:01Z"), now=NOW, months=12)
    assert not within_horizon(ev("2025-11-30T23:59:59Z"), now=NOW, months=12)
    assert not within_horizon(ev("TBA"), now=NOW, months=12)
    assert not within_horizon(ev(None), now=NOW, months=12)


def test_dedupe_keeps_first_occurrence() -> None:
    events = [
        EventRecord(id="a", title="first", source="s", source_url="https://x.se/1"),
        EventRecord(id="b", title="second", source="s", source_url="https://X.se/1/"),
        EventRecord(id="c", title="other source", source="t", source_url="https://x.se/1"),
        EventRecord(id="d", title="no url", source="s"),
        EventRecord(id="d", title="no url again", source="s"),
    ]
    assert [ev.title for ev in dedupe_events(events)] == [
        "first",
        "other source",
        "no url",
    ]


def test_backfill_only_fills_missing_fields() -> None:
    source = parse_source(
        {"id": "s", "type": "feed", "url": "https://x", "country": "SE", "region": "Stockholm"}
    )
    events = [
        EventRecord(id="a", title="a", source="s"),
        EventRecord(id="b", title="b", source="s", country="Norway"),
        EventRecord(id="c", title="c", source="s", city="Uppsala"),
    ]
    backfill_location(events, source)
    assert [(ev.country, ev.city) for ev in events] == [
        ("Sweden", "Stockholm"),
        ("Norway", "Stockholm"),
        ("Sweden", "Uppsala"),
    ]


def test_main_exits_nonzero_on_bad_config(tmp_path: Path) -> None:
    assert main(["--sources", str(tmp_path / "missing.yaml")]) == 1


@pytest.mark.asyncio
async def test_year_less_listing_dates_use_the_run_clock(tmp_path: Path) -> None:
    page = b"""<ul>
      <li class="event-item">
        <h3 class="title">Christmas Concert</h3>
        <span class="date">25 Dec</span>
        <span class="time">7:30pm</span>
        <a class="more" href="/events/christmas-concert">More</a>
      </li>
    </ul>"""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=page)

    sources = [
        parse_source(
            {
                "id": "stockholm-listing",
                "type": "scrape",
                "url": "https://listing.example.se/events/",
                "country": "SE",
                "region": "Stockholm",
                "transform": "listing",
                "selectors": LISTING_SELECTORS,
            }
        )
    ]
    settings = _settings(tmp_path)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await run_pipeline(settings, sources=sources, client=client, now=NOW)

    written = json.loads(settings.events_path.read_text(encoding="utf-8"))
    assert [ev["start"] for ev in written] == ["2025-12-25T19:30:00Z"]
    upcoming = json.loads(settings.upcoming_path.read_text(encoding="utf-8"))
    assert upcoming["count"] == 1
    assert upcoming["events"][0]["title"] == "Christmas Concert"
    assert result.counts["upcoming"] == 1


def test_only_dated_located_events_are_published() -> None:
    def ev(start: str | None, lat: float | None = 59.33) -> EventRecord:
        return EventRecord(
            id="x", title="x", source="s", start_date=start, lat=lat, lng=18.07
        )

    assert is_publishable(ev("2025-12-24T19:00:00Z"))
    assert not is_publishable(ev("TBA"))
    assert not is_publishable(ev("24 Dec"))
    assert not is_publishable(ev(None))
    assert not is_publishable(ev("2025-12-24T19:00:00Z", lat=None))
