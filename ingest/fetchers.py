from __future__ import annotations

import json
import os
from collections.abc import Awaitable, Callable, Mapping

import httpx

from ingest.fetch import fetch
from ingest.parsers.html import parse_html_items
from ingest.parsers.json import parse_json_records
from ingest.parsers.rss import parse_feed
from ingest.sources import SourceDescriptor


class FetchError(RuntimeError):
    def __init__(
        self, source_id: str, message: str, *, status_code: int | None = None
    ) -> None:
        super().__init__(f"{source_id}: {message}")
        self.source_id = source_id
        self.status_code = status_code


FetcherFn = Callable[..., Awaitable[list[dict]]]


async def _get_content(
    client: httpx.AsyncClient,
    source: SourceDescriptor,
    *,
    user_agent: str,
    params: dict[str, str] | None = None,
    extra_headers: dict[str, str] | None = None,
) -> bytes:
    status_code, content = await fetch(
        client,
        url=source.url,
        user_agent=user_agent,
        params=params,
        extra_headers=extra_headers,
    )
    if status_code != 200 or content is None:
        raise FetchError(
            source.source_id, f"http_{status_code}", status_code=status_code
        )
    return content


def auth_headers(
    source: SourceDescriptor, environ: Mapping[str, str]
) -> dict[str, str]:
    if source.auth is None:
        return {}
    token = (environ.get(source.auth.env_var) or "").strip()
    if not token:
        return {}
    if source.auth.auth_type == "bearer":
        return {source.auth.header_name: f"Bearer {token}"}
    return {source.auth.header_name: token}


async def fetch_feed(
    client: httpx.AsyncClient,
    source: SourceDescriptor,
    *,
    user_agent: str,
    environ: Mapping[str, str],
) -> list[dict]:
    content = await _get_content(client, source, user_agent=user_agent)
    try:
        return parse_feed(content)
    except ValueError as e:
        raise FetchError(source.source_id, f"parse_error: {e}") from e


async def fetch_api(
    client: httpx.AsyncClient,
    source: SourceDescriptor,
    *,
    user_agent: str,
    environ: Mapping[str, str],
) -> list[dict]:
    headers = {"Accept": "application/json", **auth_headers(source, environ)}
    content = await _get_content(
        client,
        source,
        user_agent=user_agent,
        params=source.params,
        extra_headers=headers,
    )
    try:
        return parse_json_records(content, source.result_path)
    except (ValueError, json.JSONDecodeError) as e:
        raise FetchError(source.source_id, "parse_error") from e


async def fetch_scrape(
    client: httpx.AsyncClient,
    source: SourceDescriptor,
    *,
    user_agent: str,
    environ: Mapping[str, str],
) -> list[dict]:
    content = await _get_content(
        client,
        source,
        user_agent=user_agent,
        extra_headers={"Accept": "text/html,application/xhtml+xml"},
    )
    return parse_html_items(content, source.selectors, base_url=source.url)


FETCHERS: dict[str, FetcherFn] = {
    "feed": fetch_feed,
    "api": fetch_api,
    "scrape": fetch_scrape,
}


async def fetch_raw_items(
    client: httpx.AsyncClient,
    source: SourceDescriptor,
    *,
    user_agent: str,
    environ: Mapping[str, str] | None = None,
) -> list[dict]:
    fetcher = FETCHERS.get(source.source_type)
    if fetcher is None:
        raise FetchError(source.source_id, f"unknown source type {source.source_type!r}")
    return await fetcher(
        client,
        source,
        user_agent=user_agent,
        environ=os.environ if environ is None else environ,
    )
