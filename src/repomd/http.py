from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import aiohttp
import backoff

from .cache import ResponseCache
from .errors import FetchError

logger = logging.getLogger(__name__)

_MISSING = object()
_TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


def _status_message(status: int, reason: Optional[str], url: str) -> str:
    if status == 404:
        tail = "/".join(url.rstrip("/").split("/")[-2:])
        return f"Resource not found (404): {tail}"
    if status == 401:
        return "Authentication required: Please check your credentials"
    if status == 403:
        return "Access forbidden: You don't have permission to access this resource"
    if status == 429:
        return "Too many requests: Please try again later"
    if 500 <= status < 600:
        return f"Server error ({status}): The server encountered an issue"
    return f"Error fetching data: {reason or 'HTTP error'} ({status})"


def _giveup(exc: Exception) -> bool:
    return not getattr(exc, "retryable", False)


class JsonFetcher:
    """
    GET/POST a URL and decode its JSON body.

    Transport errors, timeouts and 429/5xx responses are retried with
    exponential backoff up to `max_tries` attempts. Everything surfaces as
    FetchError carrying the URL and, when there was a response, its status.
    """

    def __init__(
        self,
        timeout_s: int = 30,
        max_tries: int = 3,
        cache: Optional[ResponseCache] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.timeout_s = timeout_s
        self.max_tries = max(1, int(max_tries))
        self.cache = cache
        self._log = log or logger

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    async def fetch_json(
        self,
        url: str,
        *,
        method: str = "GET",
        json_body: Any = None,
        use_cache: bool = False,
    ) -> Any:
        method = method.upper()
        cacheable = use_cache and self.cache is not None and method == "GET"
        if cacheable:
            hit = self.cache.get(url, _MISSING)
            if hit is not _MISSING:
                self._log.debug(f"Cache hit for: {url}")
                return hit

        request = backoff.on_exception(
            backoff.expo,
            FetchError,
            max_tries=self.max_tries,
            giveup=_giveup,
            logger=self._log,
        )(self._request_once)

        self._log.debug(f"Fetching JSON from: {url}")
        started = time.perf_counter()
        try:
            data = await request(url, method=method, json_body=json_body)
        except FetchError as e:
            self._log.debug(f"Error fetching: {url} ({(time.perf_counter() - started) * 1000:.2f}ms): {e}")
            raise
        self._log.debug(f"Fetched data in {(time.perf_counter() - started) * 1000:.2f}ms: {url}")

        if cacheable:
            self.cache.set(url, data)
        return data

    async def _request_once(self, url: str, *, method: str, json_body: Any) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)
        try:
            async with aiohttp.ClientSession(timeout=timeout, headers=self._headers()) as session:
                async with session.request(method, url, json=json_body) as resp:
                    if resp.status >= 400:
                        raise FetchError(
                            _status_message(resp.status, resp.reason, url),
                            url=url,
                            status=resp.status,
                            retryable=resp.status in _TRANSIENT_STATUSES,
                        )
                    try:
                        return await resp.json(content_type=None)
                    except ValueError as e:
                        raise FetchError(f"Invalid JSON response: {e}", url=url, status=resp.status) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            detail = str(e) or type(e).__name__
            raise FetchError(f"Request failed: {detail}", url=url, retryable=True) from e
