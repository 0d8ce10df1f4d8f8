"""Request engine: pooling, 429 waiting, error collection and REST paging.

Every remote call in the package goes through ``_send`` so that the
process-wide ``QueryPool`` bounds how many requests are in flight, and a
429 Too Many Requests answer is retried according to the options'
``RetryPolicy`` (fixed 60s, forever, unless configured otherwise).
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Iterable, Iterator, Optional, TypeVar

import requests

from github_backers.config import QueryOptions
from github_backers.credentials import (
    build_authorized_url,
    get_headers,
    redact_credentials,
)
from github_backers.errors import RemoteFetchError

logger = logging.getLogger("backers.query")

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_PAGE_SIZE = 100
MAX_WORKERS = 32


class QueryPool:
    """Caps simultaneous in-flight requests. A falsy limit means unbounded."""

    def __init__(self, concurrency: int = 0) -> None:
        self.concurrency = concurrency or 0
        self._semaphore = (
            threading.BoundedSemaphore(self.concurrency) if self.concurrency else None
        )

    @contextmanager
    def slot(self) -> Iterator[None]:
        if self._semaphore is None:
            yield
            return
        with self._semaphore:
            yield


def with_pool(opts: QueryOptions) -> QueryOptions:
    """Return options that carry a pool, creating one from ``concurrency`` if needed."""
    if opts.pool is not None:
        return opts
    return replace(opts, pool=QueryPool(opts.concurrency))


def gather(fn: Callable[[T], R], items: Iterable[T]) -> list[R]:
    """Run ``fn`` over ``items`` on worker threads, results in input order.

    The first exception raised by any call propagates to the caller.
    """
    items = list(items)
    if not items:
        return []
    if len(items) == 1:
        return [fn(items[0])]
    with ThreadPoolExecutor(max_workers=min(MAX_WORKERS, len(items))) as executor:
        return list(executor.map(fn, items))


def _transport(opts: QueryOptions) -> Any:
    return opts.session if opts.session is not None else requests


def _send(opts: QueryOptions, method: str, url: str, **kwargs: Any) -> requests.Response:
    """Issue one request inside the pool, waiting out 429 responses."""
    opts = with_pool(opts)
    safe_url = redact_credentials(url, opts.credentials)
    transport = _transport(opts)
    attempt = 0
    with opts.pool.slot():
        while True:
            try:
                resp = transport.request(method, url, timeout=opts.timeout, **kwargs)
            except requests.RequestException as exc:
                raise RemoteFetchError(
                    f"Request to {safe_url} failed",
                    url=safe_url,
                    messages=[redact_credentials(str(exc), opts.credentials)],
                ) from exc
            if resp.status_code != 429:
                return resp
            if opts.retry.exhausted(attempt):
                raise RemoteFetchError(
                    f"Request to {safe_url} is still rate limited after {attempt} retries",
                    url=safe_url,
                )
            wait = opts.retry.wait_for(attempt)
            logger.warning(
                "Request to %s failed with status 429: Too Many Requests, will try again in %.0fs",
                safe_url,
                wait,
                extra={"url": safe_url},
            )
            time.sleep(wait)
            attempt += 1


def _decode(resp: requests.Response, url: str, opts: QueryOptions) -> Any:
    """Parse a JSON response, collecting every failure into one RemoteFetchError.

    On a decode failure the payload becomes ``{}`` so the remaining checks
    can still run, but the error is raised all the same.
    """
    safe_url = redact_credentials(url, opts.credentials)
    messages: list[str] = []
    cause: Optional[BaseException] = None

    if not resp.ok:
        messages.append(
            f"Request to {safe_url} failed with status {resp.status_code}: {resp.reason}"
        )

    try:
        payload = resp.json()
    except ValueError as exc:
        payload = {}
        cause = exc
        messages.append(f"Request to {safe_url} failed to produce valid JSON")

    if isinstance(payload, dict):
        if payload.get("message"):
            messages.append(str(payload["message"]))
        for error in payload.get("errors") or []:
            message = error.get("message") if isinstance(error, dict) else error
            if message:
                messages.append(str(message))

    if messages:
        messages = [redact_credentials(m, opts.credentials) for m in messages]
        raise RemoteFetchError(
            f"Request to {safe_url} failed", url=safe_url, messages=messages
        ) from cause
    return payload


def query_rest(opts: QueryOptions) -> Any:
    """Fetch a GitHub REST resource, following pages when paging is requested.

    Paging is on when any of ``page``, ``pages`` or ``size`` is set; it stops
    at the first short page or once ``pages`` pages have been read (0 = no cap).
    """
    opts = with_pool(opts)
    paging = opts.page is not None or opts.pages is not None or opts.size is not None
    page = opts.page or 1
    pages = opts.pages or 0
    size = opts.size or DEFAULT_PAGE_SIZE
    headers = get_headers(opts.credentials, opts.headers, opts.user_agent)

    results: list[Any] = []
    while True:
        params = dict(opts.search_params or {})
        if paging:
            params["page"] = str(page)
            params["per_page"] = str(size)
        url = build_authorized_url(opts.url, opts.pathname, params, opts.credentials)
        resp = _send(opts, opts.method, url, headers=headers, data=opts.body)
        payload = _decode(resp, url, opts)

        if not paging:
            return payload

        if not isinstance(payload, list):
            if isinstance(payload, dict) and isinstance(payload.get("items"), list):
                payload = payload["items"]
            else:
                raise RemoteFetchError(
                    f"Request to {redact_credentials(url, opts.credentials)} "
                    "did not return an array as expected",
                    url=url,
                )
        results.extend(payload)

        within = not pages or page < pages
        if len(payload) < size or not within:
            return results
        page += 1


def query_graphql(query: str, opts: QueryOptions) -> Any:
    """Run one GraphQL query. No paging: callers loop on the returned cursor."""
    opts = with_pool(opts)
    url = build_authorized_url(opts.url, "graphql", None, opts.credentials)
    headers = get_headers(opts.credentials, opts.headers, opts.user_agent)
    body = {"query": query, "variables": dict(opts.variables or {})}

    resp = _send(opts, "POST", url, headers=headers, json=body)
    payload = _decode(resp, url, opts)
    if not isinstance(payload, dict):
        raise RemoteFetchError(
            f"GraphQL request to {redact_credentials(url, opts.credentials)} "
            "did not return an object as expected",
            url=url,
        )
    data = payload.get("data") or {}
    return data.get(opts.result_field) if opts.result_field else data


def query_json(url: str, opts: QueryOptions) -> Any:
    """Fetch an unauthenticated JSON endpoint with the same pooling and error policy."""
    resp = _send(opts, "GET", url, headers={"Accept": "application/json"})
    return _decode(resp, url, opts)


def query_text(url: str, opts: QueryOptions) -> str:
    """Fetch an unauthenticated text document, failing on any non-success status."""
    resp = _send(opts, "GET", url)
    if not resp.ok:
        raise RemoteFetchError(
            f"Request to {url} failed with status {resp.status_code}: {resp.reason}",
            url=url,
        )
    return resp.text


def fetch_ok(url: str, opts: QueryOptions) -> bool:
    """Whether ``url`` currently resolves. Never raises."""
    try:
        resp = _send(opts, "HEAD", url, allow_redirects=True)
        if resp.status_code == 405:
            resp = _send(opts, "GET", url, allow_redirects=True)
    except RemoteFetchError:
        return False
    return bool(resp.ok)
