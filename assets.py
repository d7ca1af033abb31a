"""Recursive asset fetching, including everything a stylesheet pulls in."""
from __future__ import annotations

import logging
import posixpath
import re
from typing import TYPE_CHECKING, List, Optional

from errors import FetchFailure
from fetcher import SnapshotFetcher
from paths import PathTable, relative_link, resolve_url

if TYPE_CHECKING:
    from crawler import CrawlState, JobContext

logger = logging.getLogger(__name__)

CSS_IMPORT_RE = re.compile(r"""@import\s+(?:url\(\s*)?["']?([^"')\s]+)["']?\s*\)?[^;]*;""", re.IGNORECASE)
CSS_URL_RE = re.compile(r"""url\(\s*["']?([^"')]+)["']?\s*\)""", re.IGNORECASE)


def extract_css_links(css_text: str, css_url: str) -> List[str]:
    found: List[str] = []
    for pattern in (CSS_IMPORT_RE, CSS_URL_RE):
        for raw in pattern.findall(css_text):
            resolved = resolve_url(css_url, raw)
            if resolved:
                found.append(resolved)
    return list(dict.fromkeys(found))


def rewrite_css_urls(
    css_text: str,
    css_url: str,
    assets: PathTable,
    stylesheet_local: Optional[str] = None,
) -> str:
    """Replace stylesheet references with local paths.

    Paths are relative to the output root unless ``stylesheet_local`` is given,
    in which case they are relative to that stylesheet's directory.
    """

    def _replace(match: re.Match) -> str:
        raw = match.group(1)
        resolved = resolve_url(css_url, raw.strip())
        if not resolved:
            return match.group(0)
        local = assets.consume(resolved)
        if not local:
            return match.group(0)
        if stylesheet_local is not None:
            local = relative_link(stylesheet_local, local)
        start, end = match.span(1)
        offset = match.start(0)
        full = match.group(0)
        return full[: start - offset] + local + full[end - offset :]

    css_text = CSS_IMPORT_RE.sub(_replace, css_text)
    return CSS_URL_RE.sub(_replace, css_text)


def is_stylesheet(mime: str, local_path: str) -> bool:
    return "text/css" in (mime or "") or posixpath.splitext(local_path)[1].lower() == ".css"


class AssetGraph:
    def __init__(self, context: "JobContext", state: "CrawlState", fetcher: SnapshotFetcher) -> None:
        self.context = context
        self.state = state
        self.fetcher = fetcher

    async def ensure(self, url: str) -> None:
        """Fetch ``url`` and its stylesheet imports, at most once per job."""
        if url in self.state.attempted_assets:
            return
        self.state.attempted_assets.add(url)

        assets = self.context.assets
        assets.register(url)
        report = self.context.report

        try:
            resource = await self.fetcher.fetch(self.context.timestamp, url)
        except FetchFailure as exc:
            logger.debug("Asset fetch failed: %s", exc)
            report.record_missing(url, "ASSET")
            return

        local = assets.extend(url, resource.content_type)
        if not is_stylesheet(resource.mime, local):
            self.context.save_bytes(local, resource.body)
            report.assets_saved += 1
            return

        report.log(f"CSS: {url}")
        css_text = resource.text()
        nested = [child for child in extract_css_links(css_text, url) if child != url]
        for child in nested:
            assets.register(child)
        for child in nested:
            await self.ensure(child)

        css_text = rewrite_css_urls(
            css_text,
            url,
            assets,
            stylesheet_local=local if self.context.css_relative_to_stylesheet else None,
        )
        self.context.save_text(local, css_text)
        report.assets_saved += 1
