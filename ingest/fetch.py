from __future__ import annotations

import httpx


DEFAULT_ACCEPT = (
    "application/json, application/rss+xml, application/atom+xml, "
    "application/xml, text/xml, text/html, */*"
)


async def fetch(
    client: httpx.AsyncClient,
    *,
    url: str,
    user_agent: str,
    params: dict[str, str] | None = None,
    extra_headers: dict[str, str] | None = None,
    timeout: httpx.Timeout | None = None,
) -> tuple[int, bytes | None]:
    headers = {
        "User-Agent": user_agent,
        "Accept": DEFAULT_ACCEPT,
    }
    if extra_headers:
        headers.update(extra_headers)

    if timeout is None:
        timeout = httpx.Timeout(connect=5.0, read=20.0, write=5.0, pool=5.0)
    response = await client.get(
        url, params=params or None, headers=headers, timeout=timeout
    )
    if response.status_code != 200:
        return response.status_code, None
    return response.status_code, response.content
