# ==============================================
# Tests for the MalAPI Fetcher and HTTP Client
# ==============================================
#
# All traffic goes through httpx.MockTransport; async code is driven
# with asyncio.run.
# ==============================================

import asyncio

import httpx
import pytest

from shared.config import FetchConfig
from shared.network import ScanHTTP, ScanHTTPError

from pescan.collectors.malapi import MalApiFetcher
from pescan.core.errors import FetchError, ParseError


BASE_URL = "https://malapi.io"


def _run_fetch(handler, *, max_concurrency=4, progress=None):
    config = FetchConfig(base_url=BASE_URL, max_concurrency=max_concurrency)

    async def run():
        async with ScanHTTP(
            base_url=BASE_URL,
            max_retries=0,
            transport=httpx.MockTransport(handler),
        ) as http:
            async with MalApiFetcher(config, http=http, progress=progress) as fetcher:
                return await fetcher.fetch()

    return asyncio.run(run())


@pytest.fixture
def site(index_html, detail_html):
    """Routes for a two-category site; tests may override entries."""
    pages = {
        "/": (200, index_html([
            ("Injection", ["VirtualAllocEx", "CreateRemoteThread"]),
            ("Evasion", ["IsDebuggerPresent", "VirtualAllocEx"]),
        ])),
    }
    for name, library in (
        ("VirtualAllocEx", "kernel32.dll"),
        ("CreateRemoteThread", "kernel32.dll"),
        ("IsDebuggerPresent", "kernel32.dll"),
    ):
        pages[f"/winapi/{name}"] = (
            200,
            detail_html(
                name,
                description=f"{name} summary",
                library=library,
                documentation=f"https://learn.microsoft.com/{name.lower()}",
            ),
        )
    return pages


def _handler(pages, requested=None):
    def handle(request: httpx.Request) -> httpx.Response:
        if requested is not None:
            requested.append(request.url.path)
        status, body = pages.get(request.url.path, (404, "not found"))
        return httpx.Response(status, text=body)
    return handle


class TestMalApiFetcher:
    """Complete fetches against a mocked site."""

    def test_builds_manifest(self, site):
        manifest = _run_fetch(_handler(site))

        assert manifest.headers == ["Injection", "Evasion"]
        assert manifest.categories[0].names == ["VirtualAllocEx", "CreateRemoteThread"]
        assert manifest.source == BASE_URL
        entry = manifest.get_entry(1, "IsDebuggerPresent")
        assert entry.library == "kernel32.dll"
        assert entry.documentation == "https://learn.microsoft.com/isdebuggerpresent"

    def test_shared_name_fetched_once_and_recorded_per_category(self, site):
        requested = []
        manifest = _run_fetch(_handler(site, requested))

        assert requested.count("/winapi/VirtualAllocEx") == 1
        assert manifest.get_entry(0, "VirtualAllocEx") is not None
        assert manifest.get_entry(1, "VirtualAllocEx") is not None

    def test_sequential_fetch_gives_same_result(self, site):
        parallel = _run_fetch(_handler(site), max_concurrency=4)
        sequential = _run_fetch(_handler(site), max_concurrency=1)
        assert sequential.categories == parallel.categories
        assert sequential.entries == parallel.entries

    def test_not_available_keeps_name_without_entry(self, site):
        site["/winapi/CreateRemoteThread"] = (406, "")
        manifest = _run_fetch(_handler(site))

        assert "CreateRemoteThread" in manifest.categories[0].name_set
        assert manifest.get_entry(0, "CreateRemoteThread") is None

    def test_progress_reports_every_detail_page(self, site):
        calls = []
        _run_fetch(_handler(site), progress=lambda done, total, name: calls.append((done, total)))

        assert len(calls) == 3
        assert calls[-1] == (3, 3)

    def test_index_error_status(self, site):
        site["/"] = (500, "boom")
        with pytest.raises(FetchError, match="index"):
            _run_fetch(_handler(site))

    def test_detail_error_status(self, site):
        site["/winapi/IsDebuggerPresent"] = (403, "forbidden")
        with pytest.raises(FetchError, match="IsDebuggerPresent"):
            _run_fetch(_handler(site))

    def test_transport_failure(self):
        def handle(request):
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(FetchError):
            _run_fetch(handle)

    def test_redirect_loop(self):
        def handle(request):
            return httpx.Response(302, headers={"Location": "/"})

        with pytest.raises(FetchError, match="index"):
            _run_fetch(handle)

    def test_index_layout_change(self, site):
        site["/"] = (200, "<html><body>new layout</body></html>")
        with pytest.raises(ParseError):
            _run_fetch(_handler(site))

    def test_detail_layout_change(self, site):
        site["/winapi/VirtualAllocEx"] = (200, "<html><body>new layout</body></html>")
        with pytest.raises(ParseError, match="VirtualAllocEx"):
            _run_fetch(_handler(site))

    def test_requires_context_manager(self):
        with pytest.raises(RuntimeError, match="async context manager"):
            asyncio.run(MalApiFetcher().fetch())


class TestScanHTTP:
    """Retry and passthrough behaviour of the shared client."""

    def test_retries_transient_status(self):
        answers = iter([503, 200])

        def handle(request):
            return httpx.Response(next(answers), text="ok")

        async def run():
            async with ScanHTTP(
                base_url=BASE_URL,
                max_retries=1,
                backoff_base=0.0,
                transport=httpx.MockTransport(handle),
            ) as http:
                return await http.fetch_text("/")

        assert asyncio.run(run()) == "ok"

    def test_passthrough_status_returned(self):
        async def run():
            async with ScanHTTP(
                base_url=BASE_URL,
                max_retries=0,
                transport=httpx.MockTransport(lambda request: httpx.Response(406)),
            ) as http:
                return await http.fetch("/winapi/X", passthrough_status={406})

        assert asyncio.run(run()).status_code == 406

    def test_error_status_raises(self):
        async def run():
            async with ScanHTTP(
                base_url=BASE_URL,
                max_retries=0,
                transport=httpx.MockTransport(lambda request: httpx.Response(404)),
            ) as http:
                await http.fetch("/missing")

        with pytest.raises(ScanHTTPError) as info:
            asyncio.run(run())
        assert info.value.status_code == 404

    def test_redirect_loop_raises_without_retry(self):
        requests = []

        def handle(request):
            requests.append(request)
            return httpx.Response(302, headers={"Location": "/"})

        async def run():
            async with ScanHTTP(
                base_url=BASE_URL,
                max_retries=2,
                backoff_base=0.0,
                transport=httpx.MockTransport(handle),
            ) as http:
                await http.fetch("/")

        with pytest.raises(ScanHTTPError) as info:
            asyncio.run(run())
        assert info.value.status_code is None
        assert isinstance(info.value.__cause__, httpx.TooManyRedirects)
        # a single attempt: at most the default redirect limit (20) plus one
        assert len(requests) <= 21
