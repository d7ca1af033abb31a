from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set, Union

import httpx
from bs4 import BeautifulSoup

import config
from assets import AssetGraph
from errors import FetchFailure, InvalidInput
from fetcher import Sleep, SnapshotFetcher, build_client
from paths import ROOT_INDEX, PathTable, UrlKind, clean_url, is_same_origin
from report import RunReport
from rewriter import ReferenceRewriter, collect_references

logger = logging.getLogger(__name__)

TIMESTAMP_RE = re.compile(r"^\d{14}$")
PROGRESS_EVERY_PAGES = 25
ProgressCallback = Callable[[Dict[str, object]], None]


@dataclass
class JobContext:
    base_url: str
    timestamp: str
    output_dir: Path
    max_pages: int
    report: RunReport
    pages: PathTable = field(default_factory=lambda: PathTable(UrlKind.PAGE))
    assets: PathTable = field(default_factory=lambda: PathTable(UrlKind.ASSET))
    css_relative_to_stylesheet: bool = config.CSS_RELATIVE_TO_STYLESHEET

    def save_text(self, rel_path: str, text: str) -> Path:
        full = self.output_dir / rel_path
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_text(text, encoding="utf-8")
        return full

    def save_bytes(self, rel_path: str, body: bytes) -> Path:
        full = self.output_dir / rel_path
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_bytes(body)
        return full


@dataclass
class CrawlState:
    visited_pages: Set[str] = field(default_factory=set)
    queue: Deque[str] = field(default_factory=deque)
    queued: Set[str] = field(default_factory=set)
    attempted_assets: Set[str] = field(default_factory=set)


class PageCrawler:
    """Breadth-first crawl of same-origin pages, a few pages at a time."""

    def __init__(
        self,
        context: JobContext,
        fetcher: SnapshotFetcher,
        *,
        batch_size: int = config.PAGE_BATCH_SIZE,
        batch_pause: float = config.BATCH_PAUSE_SECONDS,
        sleep: Sleep = asyncio.sleep,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        self.context = context
        self.fetcher = fetcher
        self.state = CrawlState()
        self.assets = AssetGraph(context, self.state, fetcher)
        self.rewriter = ReferenceRewriter(context.base_url)
        self.batch_size = max(1, batch_size)
        self.batch_pause = batch_pause
        self._sleep = sleep
        self._progress_callback = progress_callback

    async def run(self) -> RunReport:
        context = self.context
        state = self.state
        report = context.report

        report.log(f"Pinned timestamp: {context.timestamp}")
        report.log(f"Pick reason: {report.pick_reason}")
        report.log(f"Crawling from: {context.base_url}")
        report.log(f"Max pages: {context.max_pages}")

        context.pages.register(context.base_url)
        state.queue.append(context.base_url)
        state.queued.add(context.base_url)
        last_progress_mark = 0

        while state.queue and len(state.visited_pages) < context.max_pages:
            batch = self._next_batch()
            if not batch:
                break

            await asyncio.gather(*(self._process_page(url) for url in batch))

            self._emit_progress()
            if state.queue:
                await self._sleep(self.batch_pause)

            mark = len(state.visited_pages) // PROGRESS_EVERY_PAGES
            if mark > last_progress_mark:
                last_progress_mark = mark
                report.log(
                    f"Progress: pages={len(state.visited_pages)}, "
                    f"assets={len(state.attempted_assets)}, queue={len(state.queue)}"
                )

        self._write_redirect_stub()
        return report

    def _next_batch(self) -> List[str]:
        state = self.state
        batch: List[str] = []
        while (
            len(batch) < self.batch_size
            and state.queue
            and len(state.visited_pages) < self.context.max_pages
        ):
            url = state.queue.popleft()
            state.queued.discard(url)
            if url in state.visited_pages or not is_same_origin(self.context.base_url, url):
                continue
            state.visited_pages.add(url)
            batch.append(url)
        return batch

    def _enqueue(self, links: Iterable[str]) -> None:
        state = self.state
        pages = self.context.pages
        for link in links:
            if link in state.visited_pages or link in state.queued:
                continue
            if len(state.visited_pages) + len(state.queue) >= self.context.max_pages:
                break
            if not is_same_origin(self.context.base_url, link):
                continue
            pages.register(link)
            state.queue.append(link)
            state.queued.add(link)

    async def _process_page(self, url: str) -> None:
        context = self.context
        report = context.report
        local = context.pages.register(url)
        report.log(f"PAGE ({len(self.state.visited_pages)}/{context.max_pages}): {url}")

        try:
            resource = await self.fetcher.fetch_page(context.timestamp, url)
        except FetchFailure as exc:
            logger.debug("Page fetch failed: %s", exc)
            report.record_missing(url, "PAGE")
            return

        try:
            if not resource.is_html:
                context.save_bytes(local, resource.body)
                report.pages_saved += 1
                return

            soup = BeautifulSoup(resource.text(), "html.parser")
            asset_urls, links = collect_references(soup, url, context.base_url)

            # registration must finish before the first await below
            for asset_url in asset_urls:
                context.assets.register(asset_url)
            self._enqueue(links)

            await asyncio.gather(*(self._ensure_asset(asset_url) for asset_url in asset_urls))

            self.rewriter.rewrite(soup, url, local, context.assets, context.pages)
            context.save_text(local, str(soup))
            report.pages_saved += 1
        except Exception:
            logger.exception("Failed to process page %s", url)
            report.record_missing(url, "PAGE")

    async def _ensure_asset(self, url: str) -> None:
        try:
            await self.assets.ensure(url)
        except Exception:
            logger.exception("Failed to download asset %s", url)
            self.context.report.record_missing(url, "ASSET")

    def _write_redirect_stub(self) -> None:
        base_rel = self.context.pages.get(self.context.base_url)
        if base_rel and base_rel != ROOT_INDEX:
            html = f'<!doctype html><meta http-equiv="refresh" content="0; url=./{base_rel}">'
            self.context.save_text(ROOT_INDEX, html)

    def _emit_progress(self) -> None:
        if self._progress_callback is None:
            return
        visited = len(self.state.visited_pages)
        self._progress_callback(
            {
                "stage": "crawl",
                "message": "Restoring pages",
                "percent": min(99, int((visited / max(self.context.max_pages, 1)) * 100)),
                "pages_visited": visited,
                "pages_saved": self.context.report.pages_saved,
                "assets_saved": self.context.report.assets_saved,
                "missing": len(self.context.report.missing),
                "queue_size": len(self.state.queue),
                "max_pages": self.context.max_pages,
            }
        )


async def restore(
    base_url: str,
    timestamp: str,
    output_dir: Union[str, Path],
    max_pages: int = config.DEFAULT_MAX_PAGES,
    pick_reason: str = "",
    *,
    client: Optional[httpx.AsyncClient] = None,
    fetcher: Optional[SnapshotFetcher] = None,
    css_relative_to_stylesheet: bool = config.CSS_RELATIVE_TO_STYLESHEET,
    batch_pause: float = config.BATCH_PAUSE_SECONDS,
    sleep: Sleep = asyncio.sleep,
    progress_callback: Optional[ProgressCallback] = None,
) -> RunReport:
    """Crawl the pinned snapshot of ``base_url`` into ``output_dir``.

    Per-resource failures end up in the returned report; only bad arguments
    raise.
    """
    base_url = clean_url((base_url or "").strip())
    if not base_url.startswith(("http://", "https://")):
        raise InvalidInput(f"Base URL must be http(s): {base_url!r}")
    if not TIMESTAMP_RE.match(timestamp or ""):
        raise InvalidInput(f"Timestamp must be 14 digits: {timestamp!r}")

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    context = JobContext(
        base_url=base_url,
        timestamp=timestamp,
        output_dir=out,
        max_pages=config.clamp_max_pages(max_pages),
        report=RunReport(base_url=base_url, timestamp=timestamp, pick_reason=pick_reason),
        css_relative_to_stylesheet=css_relative_to_stylesheet,
    )

    async def _crawl(http: httpx.AsyncClient) -> RunReport:
        crawler = PageCrawler(
            context,
            fetcher or SnapshotFetcher(http, sleep=sleep),
            batch_pause=batch_pause,
            sleep=sleep,
            progress_callback=progress_callback,
        )
        return await crawler.run()

    if client is not None:
        report = await _crawl(client)
    else:
        async with build_client() as owned:
            report = await _crawl(owned)

    report.write(out)
    logger.info(
        "Restore finished: pages=%d assets=%d missing=%d",
        report.pages_saved,
        report.assets_saved,
        len(report.missing),
    )
    return report
