"""
pescan Async Network Client
============================

Thin async HTTP client built on **httpx** with automatic retry,
exponential backoff and jitter.  All transport problems surface as a
single :class:`ScanHTTPError` so callers can tell network failures apart
from everything else.

References:
    - AWS Architecture Blog (2015). Exponential Backoff and Jitter.
    - HTTPX documentation. https://www.python-httpx.org/
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Collection

import httpx

logger = logging.getLogger("pescan.network")


class ScanHTTPError(Exception):
    """Transport error, timeout, or non-success HTTP status.

    Attributes:
        url:         Requested URL.
        status_code: HTTP status when the server answered, else ``None``.
    """

    def __init__(
        self,
        message: str,
        *,
        url: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ScanHTTP:
    """Async HTTP client with retry and backoff.

    Usage::

        async with ScanHTTP(base_url="https://malapi.io") as http:
            page = await http.fetch_text("/")

    Args:
        base_url:      Base URL prepended to relative paths.
        timeout:       Request timeout in seconds.
        max_retries:   Retry attempts on transient errors.
        backoff_base:  Base delay (seconds) for exponential backoff.
        backoff_max:   Maximum delay cap (seconds).
        headers:       Default HTTP headers merged into every request.
        user_agent:    User-Agent header value.
        transport:     Optional httpx transport (tests use
                       :class:`httpx.MockTransport`).
    """

    # transient server errors + rate limit
    _RETRYABLE_STATUS: frozenset[int] = frozenset({429, 500, 502, 503, 504})

    def __init__(
        self,
        *,
        base_url: str = "",
        timeout: float = 30.0,
        max_retries: int = 2,
        backoff_base: float = 0.5,
        backoff_max: float = 10.0,
        headers: dict[str, str] | None = None,
        user_agent: str = "pescan/2.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._attempts = max_retries + 1
        self._delay = (backoff_base, backoff_max)
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"User-Agent": user_agent, **(headers or {})},
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> ScanHTTP:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------ #
    #  Requests
    # ------------------------------------------------------------------ #

    async def fetch(
        self,
        url: str,
        *,
        passthrough_status: Collection[int] = (),
    ) -> httpx.Response:
        """GET *url*, retrying transport errors and transient statuses.

        A status listed in *passthrough_status* is handed back as is.  Any
        other error status, or running out of attempts, raises
        :class:`ScanHTTPError`.
        """
        attempt = 0
        while True:
            attempt += 1
            last_try = attempt >= self._attempts
            try:
                response = await self._client.get(url)
            except httpx.TransportError as exc:
                logger.warning(
                    "GET %s failed (attempt %d of %d): %s",
                    url, attempt, self._attempts, exc,
                )
                if last_try:
                    raise ScanHTTPError(
                        f"Giving up on {url} after {attempt} attempts: {exc}",
                        url=url,
                    ) from exc
                await self._sleep_before_retry(attempt)
                continue
            except (httpx.RequestError, httpx.InvalidURL) as exc:
                # redirect loops, undecodable bodies, bad URLs: retrying won't help
                raise ScanHTTPError(f"GET {url} failed: {exc}", url=url) from exc

            status = response.status_code
            if status in passthrough_status or response.is_success:
                return response
            if status in self._RETRYABLE_STATUS and not last_try:
                logger.warning(
                    "GET %s answered %d (attempt %d of %d)",
                    url, status, attempt, self._attempts,
                )
                await self._sleep_before_retry(attempt)
                continue
            raise ScanHTTPError(
                f"HTTP {status} from {response.url}", url=url, status_code=status
            )

    async def fetch_text(self, url: str) -> str:
        """Body of a successful GET, decoded."""
        return (await self.fetch(url)).text

    async def _sleep_before_retry(self, attempt: int) -> None:
        # full jitter: uniform in [0, min(cap, base * 2**(attempt - 1))]
        base, cap = self._delay
        delay = random.uniform(0, min(cap, base * 2 ** (attempt - 1)))
        logger.debug("Retrying in %.2fs", delay)
        await asyncio.sleep(delay)
