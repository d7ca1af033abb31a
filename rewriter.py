from __future__ import annotations

import re
from typing import Callable, List, Optional, Tuple

from bs4 import BeautifulSoup

from paths import PathTable, is_same_origin, relative_link, resolve_url

CSS_URL_RE = re.compile(r"url\(([^)]+)\)", re.IGNORECASE)

ASSET_SELECTORS: Tuple[Tuple[str, str], ...] = (
    ("link[rel~=stylesheet][href]", "href"),
    ("script[src]", "src"),
    ("img[src]", "src"),
    ("img[data-src]", "data-src"),
    ("source[src]", "src"),
    ("video[src]", "src"),
    ("video[poster]", "poster"),
    ("audio[src]", "src"),
    ("link[rel~=icon][href]", "href"),
    ("link[rel~=apple-touch-icon][href]", "href"),
    ("link[rel~=manifest][href]", "href"),
    ("link[rel~=preload][href]", "href"),
)
SRCSET_SELECTOR = "img[srcset], source[srcset]"
ANCHOR_SELECTOR = "a[href]"


def _srcset_candidates(value: str) -> List[str]:
    out: List[str] = []
    for item in value.split(","):
        chunk = item.strip()
        if chunk:
            out.append(chunk.split()[0])
    return out


def _inline_css_urls(css: str) -> List[str]:
    return [match.strip().strip("\"'") for match in CSS_URL_RE.findall(css)]


def collect_references(soup: BeautifulSoup, page_url: str, base_url: str) -> Tuple[List[str], List[str]]:
    """Return (asset urls, same-origin page urls) referenced by a parsed page."""
    assets: List[str] = []
    links: List[str] = []

    def _add(bucket: List[str], raw: Optional[str]) -> None:
        resolved = resolve_url(page_url, raw or "")
        if resolved:
            bucket.append(resolved)

    for selector, attr in ASSET_SELECTORS:
        for tag in soup.select(selector):
            _add(assets, tag.get(attr))

    for tag in soup.select(SRCSET_SELECTOR):
        for candidate in _srcset_candidates(tag.get("srcset") or ""):
            _add(assets, candidate)

    # collected for download only; the rewrite pass leaves these positions alone
    for tag in soup.select("[style]"):
        for candidate in _inline_css_urls(tag.get("style") or ""):
            _add(assets, candidate)
    for tag in soup.find_all("style"):
        for candidate in _inline_css_urls(tag.get_text()):
            _add(assets, candidate)

    for tag in soup.select(ANCHOR_SELECTOR):
        resolved = resolve_url(page_url, tag.get("href") or "")
        if resolved and is_same_origin(base_url, resolved):
            links.append(resolved)

    return list(dict.fromkeys(assets)), list(dict.fromkeys(links))


class ReferenceRewriter:
    """Points a parsed page's references at their local copies."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url

    def rewrite(
        self,
        soup: BeautifulSoup,
        page_url: str,
        page_local_path: str,
        asset_table: PathTable,
        page_table: PathTable,
    ) -> int:
        changed = 0

        def _asset(url: str) -> Optional[str]:
            local = asset_table.consume(url)
            return relative_link(page_local_path, local) if local else None

        def _page(url: str) -> Optional[str]:
            if not is_same_origin(self.base_url, url):
                return None
            local = page_table.consume(url)
            return relative_link(page_local_path, local) if local else None

        for selector, attr in ASSET_SELECTORS:
            for tag in soup.select(selector):
                changed += self._rewrite_attr(tag, attr, page_url, _asset)

        for tag in soup.select(SRCSET_SELECTOR):
            changed += self._rewrite_srcset(tag, page_url, _asset)

        for tag in soup.select(ANCHOR_SELECTOR):
            changed += self._rewrite_attr(tag, "href", page_url, _page)

        return changed

    def _rewrite_attr(self, tag, attr: str, page_url: str, mapper: Callable[[str], Optional[str]]) -> int:
        value = tag.get(attr)
        if not value or not isinstance(value, str):
            return 0
        resolved = resolve_url(page_url, value)
        if not resolved:
            return 0
        replacement = mapper(resolved)
        if not replacement:
            return 0
        tag[attr] = replacement
        return 1

    def _rewrite_srcset(self, tag, page_url: str, mapper: Callable[[str], Optional[str]]) -> int:
        srcset = tag.get("srcset") or ""
        parts: List[str] = []
        any_change = False
        for item in srcset.split(","):
            chunk = item.strip()
            if not chunk:
                continue
            pieces = chunk.split()
            resolved = resolve_url(page_url, pieces[0])
            replacement = mapper(resolved) if resolved else None
            if replacement:
                any_change = True
                parts.append(" ".join([replacement] + pieces[1:]))
            else:
                parts.append(chunk)
        if not any_change:
            return 0
        tag["srcset"] = ", ".join(parts)
        return 1
