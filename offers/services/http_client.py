from __future__ import annotations

import os

import httpx

DEFAULT_USER_AGENT = "FlightDesk/1.0 (+https://flightdesk.local)"


def flightdesk_user_agent() -> str:
    value = (os.getenv("FLIGHTDESK_USER_AGENT") or "").strip()
    return value or DEFAULT_USER_AGENT


def default_http_timeout(total: float | None = None) -> httpx.Timeout:
    connect = float(os.getenv("FLIGHTDESK_HTTP_CONNECT_TIMEOUT", "5.0"))
    read = float(os.getenv("FLIGHTDESK_HTTP_READ_TIMEOUT", "10.0"))
    write = float(os.getenv("FLIGHTDESK_HTTP_WRITE_TIMEOUT", str(read)))
    pool = float(os.getenv("FLIGHTDESK_HTTP_POOL_TIMEOUT", "5.0"))
    if total is not None:
        connect, read, write, pool = (min(value, total) for value in (connect, read, write, pool))
    return httpx.Timeout(connect=connect, read=read, write=write, pool=pool)


def build_async_http_client(
    *,
    accept: str = "application/json",
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    headers = {
        "User-Agent": flightdesk_user_agent(),
        "Accept": accept,
    }
    return httpx.AsyncClient(
        timeout=default_http_timeout(timeout),
        headers=headers,
        follow_redirects=True,
        transport=transport,
    )
