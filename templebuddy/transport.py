from __future__ import annotations

import json
from typing import Any

import httpx

from templebuddy.domain import RequestFailure

UPSTREAM_HEADERS = {
    "accept": "application/json, text/plain, */*",
    "accept-language": "en-US,en;q=0.9",
}


def build_upstream_client(
    *,
    base_url: str,
    session_cookie: str | None,
    timeout_seconds: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    headers = dict(UPSTREAM_HEADERS)
    headers["referer"] = base_url.rsplit("/api", 1)[0] + "/"
    if session_cookie:
        headers["cookie"] = session_cookie
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/") + "/",
        headers=headers,
        timeout=timeout_seconds,
        transport=transport,
    )


async def request_json(client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> Any:
    """Send one request and decode the JSON body.

    Anything that keeps us from getting a JSON answer becomes RequestFailure.
    """
    try:
        r = await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise RequestFailure(f"{method} {url} failed: {type(e).__name__}: {e}", url=url) from e

    if r.status_code < 200 or r.status_code >= 300:
        raise RequestFailure(
            f"{method} {url} returned HTTP {r.status_code}",
            url=url,
            status_code=r.status_code,
        )

    try:
        return r.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise RequestFailure(f"{method} {url} returned a non-JSON body", url=url, status_code=r.status_code) from e
