from __future__ import annotations

import json
import unittest
from typing import Dict, List

import httpx

from errors import InvalidInput, NoCaptureFound
from fetcher import SnapshotFetcher
from resolver import (
    SnapshotRequest,
    TimestampResolver,
    count_stable_assets,
    normalize_base_url,
    timestamp_from_archived_url,
)

HEADER = ["timestamp", "original", "statuscode", "mimetype"]


def _rich_html(assets: int) -> str:
    tags = "".join(f'<img src="/img/{i}.png">' for i in range(assets))
    return f"<html><head></head><body>{tags}</body></html>"


async def _no_sleep(_delay: float) -> None:
    return None


class ArchivedUrlTest(unittest.TestCase):
    def test_full_timestamp(self) -> None:
        self.assertEqual(
            timestamp_from_archived_url("https://web.archive.org/web/20250228153124/https://example.com/"),
            "20250228153124",
        )

    def test_short_timestamp_is_zero_padded(self) -> None:
        self.assertEqual(
            timestamp_from_archived_url("https://web.archive.org/web/202502281531/https://example.com/"),
            "20250228153100",
        )

    def test_mode_suffix_is_ignored(self) -> None:
        self.assertEqual(
            timestamp_from_archived_url("https://web.archive.org/web/20250228id_/https://example.com/"),
            "20250228000000",
        )

    def test_missing_segment(self) -> None:
        with self.assertRaises(InvalidInput):
            timestamp_from_archived_url("https://web.archive.org/details/example")


class NormalizeTest(unittest.TestCase):
    def test_adds_scheme_and_trailing_slash(self) -> None:
        self.assertEqual(normalize_base_url(" example.com "), "https://example.com/")
        self.assertEqual(normalize_base_url("http://example.com/blog#x"), "http://example.com/blog/")

    def test_trailing_slash_goes_on_path_not_query(self) -> None:
        self.assertEqual(normalize_base_url("https://example.com/?page=1"), "https://example.com/?page=1")
        self.assertEqual(normalize_base_url("https://example.com/blog?page=1"), "https://example.com/blog/?page=1")
        self.assertEqual(normalize_base_url("https://example.com"), "https://example.com/")

    def test_rejects_bad_urls(self) -> None:
        for value in ("", "   ", "ftp://example.com/", "https://"):
            with self.subTest(value=value):
                with self.assertRaises(InvalidInput):
                    normalize_base_url(value)

    def test_count_stable_assets(self) -> None:
        html = (
            '<link rel="stylesheet" href="a.css"><link rel="icon" href="f.ico">'
            '<script src="a.js"></script><script>inline()</script>'
            '<img src="a.png"><img data-src="b.png">'
        )
        self.assertEqual(count_stable_assets(html), 4)

    def test_lazy_image_counts_once(self) -> None:
        html = "".join(f'<img src="/p.gif" data-src="/img/{i}.png">' for i in range(5))
        self.assertEqual(count_stable_assets(html), 5)


class TimestampResolverTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.cdx_params: List[Dict[str, str]] = []
        self.cdx_rows: List[List[str]] = []
        self.pages: Dict[str, str] = {}
        self.page_calls: List[str] = []
        self.client = httpx.AsyncClient(transport=httpx.MockTransport(self._handler))
        fetcher = SnapshotFetcher(self.client, attempts=3, sleep=_no_sleep)
        self.resolver = TimestampResolver(self.client, fetcher)

    async def asyncTearDown(self) -> None:
        await self.client.aclose()

    def _handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/cdx/search/cdx":
            self.cdx_params.append(dict(request.url.params))
            body = [HEADER] + self.cdx_rows if self.cdx_rows else []
            return httpx.Response(200, content=json.dumps(body).encode("utf-8"))
        timestamp = request.url.path.split("/")[2][:14]
        self.page_calls.append(timestamp)
        html = self.pages.get(timestamp)
        if html is None:
            return httpx.Response(404)
        return httpx.Response(200, content=html.encode("utf-8"), headers={"content-type": "text/html"})

    async def test_archived_url_takes_precedence(self) -> None:
        snapshot = await self.resolver.resolve(
            SnapshotRequest(
                source_url="https://example.com",
                target_date="2020-01-01",
                archived_url="https://web.archive.org/web/20250228153124/https://example.com/",
            )
        )
        self.assertEqual(snapshot.timestamp, "20250228153124")
        self.assertEqual(snapshot.base_url, "https://example.com/")
        self.assertEqual(snapshot.pick_reason, "from wayback url")
        self.assertEqual(self.cdx_params, [])

    async def test_date_mode_queries_closest_to_noon(self) -> None:
        self.cdx_rows = [["20250228093000", "https://example.com/", "200", "text/html"]]
        snapshot = await self.resolver.resolve(
            SnapshotRequest(source_url="https://example.com/", target_date="2025-02-28")
        )
        self.assertEqual(snapshot.timestamp, "20250228093000")
        self.assertEqual(snapshot.pick_reason, "closest to 2025-02-28")
        params = self.cdx_params[0]
        self.assertEqual(params["closest"], "20250228120000")
        self.assertEqual(params["limit"], "1")
        self.assertEqual(params["filter"], "statuscode:200")
        self.assertEqual(params["fl"], "timestamp,original,statuscode,mimetype")
        self.assertEqual(params["url"], "https://example.com/")

    async def test_date_mode_without_capture(self) -> None:
        with self.assertRaises(NoCaptureFound):
            await self.resolver.resolve(SnapshotRequest(source_url="https://example.com/", target_date="2025-02-28"))

    async def test_bad_date_fails_before_network(self) -> None:
        for value in ("28-02-2025", "2025-2-28", "2025-02-30"):
            with self.subTest(value=value):
                with self.assertRaises(InvalidInput):
                    await self.resolver.resolve(SnapshotRequest(source_url="https://example.com/", target_date=value))
        self.assertEqual(self.cdx_params, [])

    async def test_automatic_mode_picks_first_stable_capture(self) -> None:
        self.cdx_rows = [
            ["20240301000000", "https://example.com/", "200", "text/html"],
            ["20240201000000", "https://example.com/", "200", "text/html"],
            ["20240101000000", "https://example.com/", "200", "text/html"],
            ["20231201000000", "https://example.com/", "200", "text/html"],
        ]
        self.pages = {
            "20240301000000": _rich_html(3),
            "20240101000000": _rich_html(12),
            "20231201000000": _rich_html(40),
        }
        snapshot = await self.resolver.resolve(SnapshotRequest(source_url="https://example.com/"))
        self.assertEqual(snapshot.timestamp, "20240101000000")
        self.assertEqual(snapshot.pick_reason, "auto-picked latest stable capture (assets=12)")
        self.assertEqual(self.page_calls, ["20240301000000", "20240201000000", "20240101000000"])
        params = self.cdx_params[0]
        self.assertEqual(params["collapse"], "digest")
        self.assertEqual(params["sort"], "desc")
        self.assertEqual(params["limit"], "30")

    async def test_automatic_mode_without_stable_capture(self) -> None:
        self.cdx_rows = [["20240301000000", "https://example.com/", "200", "text/html"]]
        self.pages = {"20240301000000": _rich_html(2)}
        with self.assertRaises(NoCaptureFound):
            await self.resolver.resolve(SnapshotRequest(source_url="https://example.com/"))

    async def test_index_failure_is_no_capture(self) -> None:
        async def broken(_request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        async with httpx.AsyncClient(transport=httpx.MockTransport(broken)) as client:
            resolver = TimestampResolver(client, SnapshotFetcher(client, sleep=_no_sleep))
            with self.assertRaises(NoCaptureFound):
                await resolver.resolve(SnapshotRequest(source_url="https://example.com/", target_date="2025-02-28"))


if __name__ == "__main__":
    unittest.main(verbosity=2)
