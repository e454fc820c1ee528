"""JSON-over-HTTP helpers shared by the registry and identity clients.

Every call carries an explicit timeout enforced by httpx. A timed-out
request is abandoned and reported as :class:`~prxs_mesh.exceptions.TimeoutError`;
there are no retries at this layer. All calls are read-only, so nothing
needs unwinding after a failure.

A shared :class:`httpx.AsyncClient` may be passed in (tests inject one
backed by :class:`httpx.MockTransport`); otherwise a short-lived client is
opened for the single request.
"""

from __future__ import annotations

from typing import Any

import httpx

from prxs_mesh.exceptions import ConfigurationError, TimeoutError, TransportError

USER_AGENT = "prxs-mesh/0.1"
_BODY_PREVIEW = 300


async def _send(
    method: str,
    url: str,
    *,
    client: httpx.AsyncClient | None,
    timeout: float,
    **kwargs: Any,
) -> httpx.Response:
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as owned:
                return await owned.request(method, url, timeout=timeout, **kwargs)
        return await client.request(method, url, timeout=timeout, **kwargs)
    except httpx.TimeoutException as exc:
        raise TimeoutError(f"{method} {url} timed out after {timeout}s") from exc
    except httpx.HTTPError as exc:
        raise TransportError(f"{method} {url} failed: {exc}") from exc
    except httpx.InvalidURL as exc:
        raise ConfigurationError(f"Invalid URL {url!r}: {exc}") from exc


def _decode(resp: httpx.Response, url: str) -> Any:
    if resp.is_error:
        raise TransportError(f"HTTP {resp.status_code} on {url}: {resp.text[:_BODY_PREVIEW]}")
    try:
        return resp.json()
    except ValueError as exc:
        raise TransportError(f"Malformed JSON from {url}: {exc}") from exc


async def get_json(
    url: str,
    *,
    params: dict[str, Any] | None = None,
    client: httpx.AsyncClient | None = None,
    timeout: float = 8.0,
) -> Any:
    """``GET`` *url* and decode the JSON body."""
    resp = await _send(
        "GET",
        url,
        client=client,
        timeout=timeout,
        params=params,
        headers={"Accept": "application/json", "User-Agent": USER_AGENT},
    )
    return _decode(resp, url)


async def post_json(
    url: str,
    body: Any,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = 5.0,
) -> Any:
    """``POST`` *body* as JSON to *url* and decode the JSON response."""
    resp = await _send(
        "POST",
        url,
        client=client,
        timeout=timeout,
        json=body,
        headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
    )
    return _decode(resp, url)
