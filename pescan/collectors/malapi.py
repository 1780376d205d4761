"""
MalAPI Collector
=================

Asynchronous collector for the MalAPI reference data.  One request
fetches the index page (categories and the API names under each); one
request per distinct API name fetches its detail page (summary, DLL and
documentation link).  The result is a complete
:class:`~pescan.core.models.CacheManifest` or an exception -- never a
partial manifest.

Failure classes are kept apart so the cache manager can fall back
correctly:

  * transport problems, timeouts and error statuses -> ``FetchError``
  * pages that do not match the expected layout     -> ``ParseError``

Detail pages answering HTTP 406 are the site's way of saying it has no
page for that API; the name stays in its category without metadata.

References:
    - MalAPI.io. https://malapi.io
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from shared.config import FetchConfig
from shared.network import ScanHTTP, ScanHTTPError

from pescan.core.errors import FetchError, ParseError
from pescan.core.models import ApiCategory, ApiEntry, CacheManifest
from pescan.parsers.malapi_html import ApiDetail, parse_detail, parse_index

logger = logging.getLogger("pescan.collectors.malapi")

#: ``(completed, total, api_name)`` after each detail page.
ProgressCallback = Callable[[int, int, str], None]

_NOT_AVAILABLE = 406


class MalApiFetcher:
    """Fetch and parse the MalAPI category table.

    Usage::

        async with MalApiFetcher(config.fetch) as fetcher:
            manifest = await fetcher.fetch()

    Args:
        config: Endpoint, timeout, retry and concurrency settings.
        http: Pre-built client (tests inject one backed by
              :class:`httpx.MockTransport`).  Created on enter otherwise.
        progress: Optional callback invoked after each detail page.
    """

    def __init__(
        self,
        config: Optional[FetchConfig] = None,
        *,
        http: Optional[ScanHTTP] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.config = config or FetchConfig()
        self._http_instance = http
        self._owns_http = http is None
        self._http: Optional[ScanHTTP] = None
        self._progress = progress

    async def __aenter__(self) -> MalApiFetcher:
        if self._http_instance is not None:
            self._http = self._http_instance
        else:
            self._http = ScanHTTP(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                max_retries=self.config.max_retries,
                user_agent=self.config.user_agent,
            )
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._owns_http and self._http is not None:
            await self._http.close()
        self._http = None

    def _get_http(self) -> ScanHTTP:
        if self._http is None:
            raise RuntimeError(
                "MalApiFetcher must be used as an async context manager. "
                "Use 'async with MalApiFetcher(...) as fetcher:'"
            )
        return self._http

    # ================================================================== #
    #  Public API
    # ================================================================== #

    async def fetch(self) -> CacheManifest:
        """Fetch the index and every detail page and build a manifest.

        Raises:
            FetchError: On any transport failure or error status.
            ParseError: When a page does not match the expected layout.
        """
        index = await self._fetch_index()

        unique_names = list(dict.fromkeys(n for _, names in index for n in names))
        logger.info(
            "Index lists %d categories, %d distinct APIs",
            len(index), len(unique_names),
        )

        details = await self._fetch_details(unique_names)

        try:
            categories = [ApiCategory(header=h, names=names) for h, names in index]
            entries = [
                ApiEntry(
                    category=header,
                    name=name,
                    description=detail.description,
                    library=detail.library,
                    documentation=detail.documentation,
                )
                for header, names in index
                for name in names
                if (detail := details[name]) is not None
            ]
            return CacheManifest(
                source=self.config.base_url,
                fetched_at=datetime.now(timezone.utc),
                categories=categories,
                entries=entries,
            )
        except ValidationError as exc:
            raise ParseError(f"fetched data is inconsistent: {exc}") from exc

    # ================================================================== #
    #  Internals
    # ================================================================== #

    async def _fetch_index(self) -> list[tuple[str, list[str]]]:
        http = self._get_http()
        try:
            page = await http.fetch_text("/")
        except ScanHTTPError as exc:
            raise FetchError(f"could not fetch MalAPI index: {exc}") from exc
        return parse_index(page)

    async def _fetch_detail(self, name: str) -> Optional[ApiDetail]:
        http = self._get_http()
        url = f"{self.config.detail_path}{name}"
        try:
            response = await http.fetch(url, passthrough_status={_NOT_AVAILABLE})
        except ScanHTTPError as exc:
            raise FetchError(f"could not fetch details for {name}: {exc}") from exc

        if response.status_code == _NOT_AVAILABLE:
            logger.warning("%s unreachable, keeping it without details", name)
            return None
        return parse_detail(response.text, name)

    async def _fetch_details(
        self, names: list[str]
    ) -> dict[str, Optional[ApiDetail]]:
        """Fetch detail pages with at most ``max_concurrency`` in flight.

        The first failure cancels the remaining requests and propagates.
        """
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))
        total = len(names)
        completed = 0

        async def bounded(name: str) -> Optional[ApiDetail]:
            nonlocal completed
            async with semaphore:
                detail = await self._fetch_detail(name)
            completed += 1
            if self._progress is not None:
                self._progress(completed, total, name)
            return detail

        tasks = [asyncio.ensure_future(bounded(name)) for name in names]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return dict(zip(names, results))


# ---------------------------------------------------------------------------
# Blocking boundary
# ---------------------------------------------------------------------------

def fetch_manifest(
    config: Optional[FetchConfig] = None,
    progress: Optional[ProgressCallback] = None,
) -> CacheManifest:
    """Run one complete fetch to completion on a fresh event loop."""

    async def _run() -> CacheManifest:
        async with MalApiFetcher(config, progress=progress) as fetcher:
            return await fetcher.fetch()

    return asyncio.run(_run())
