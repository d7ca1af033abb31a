from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional
from urllib.parse import urlparse, urlunparse

import httpx
from bs4 import BeautifulSoup

import config
from errors import FetchFailure, InvalidInput, NoCaptureFound
from fetcher import SnapshotFetcher, build_client

logger = logging.getLogger(__name__)

ARCHIVED_TS_RE = re.compile(r"/web/(\d{8,14})(?!\d)")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
CDX_FIELDS = "timestamp,original,statuscode,mimetype"
STABLE_ASSET_SELECTORS = (
    "link[rel~=stylesheet][href]",
    "script[src]",
    "img[src], img[data-src]",
)


@dataclass
class SnapshotRequest:
    source_url: str
    target_date: Optional[str] = None
    archived_url: Optional[str] = None


@dataclass(frozen=True)
class ResolvedSnapshot:
    timestamp: str
    base_url: str
    pick_reason: str


def normalize_base_url(source_url: str) -> str:
    url = (source_url or "").strip()
    if not url:
        raise InvalidInput("URL is required")
    if "://" not in url:
        url = "https://" + url
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        raise InvalidInput(f"Please provide a valid URL (http/https): {source_url}")
    path = parsed.path if parsed.path.endswith("/") else parsed.path + "/"
    return urlunparse((parsed.scheme.lower(), parsed.netloc, path, "", parsed.query, ""))


def timestamp_from_archived_url(archived_url: str) -> str:
    match = ARCHIVED_TS_RE.search(archived_url or "")
    if not match:
        raise InvalidInput(
            "Could not extract a timestamp from the Wayback URL. Expected a /web/<timestamp>/ segment."
        )
    return match.group(1).ljust(14, "0")


def noon_instant(target_date: str) -> str:
    value = (target_date or "").strip()
    if not DATE_RE.match(value):
        raise InvalidInput(f"Date must be YYYY-MM-DD (e.g. 2025-02-28), got {target_date!r}")
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise InvalidInput(f"Not a calendar date: {value}") from exc
    return value.replace("-", "") + "120000"


def count_stable_assets(html: str) -> int:
    soup = BeautifulSoup(html, "html.parser")
    return sum(len(soup.select(selector)) for selector in STABLE_ASSET_SELECTORS)


class TimestampResolver:
    """Pins the one snapshot timestamp a restore job will use."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        fetcher: Optional[SnapshotFetcher] = None,
        *,
        candidate_limit: int = config.AUTO_CANDIDATE_LIMIT,
        stable_threshold: int = config.STABLE_ASSET_THRESHOLD,
    ) -> None:
        self.client = client
        self.fetcher = fetcher or SnapshotFetcher(client)
        self.candidate_limit = candidate_limit
        self.stable_threshold = stable_threshold

    async def resolve(self, request: SnapshotRequest) -> ResolvedSnapshot:
        base_url = normalize_base_url(request.source_url)
        archived_url = (request.archived_url or "").strip()
        target_date = (request.target_date or "").strip()

        if archived_url:
            timestamp = timestamp_from_archived_url(archived_url)
            return ResolvedSnapshot(timestamp, base_url, "from wayback url")

        if target_date:
            closest = noon_instant(target_date)
            rows = await self._query_index(
                base_url,
                {"limit": "1", "sort": "closest", "closest": closest},
            )
            if not rows:
                raise NoCaptureFound(f"No Wayback capture found near {target_date} for {base_url}")
            return ResolvedSnapshot(rows[0][0], base_url, f"closest to {target_date}")

        return await self._resolve_automatic(base_url)

    async def _resolve_automatic(self, base_url: str) -> ResolvedSnapshot:
        rows = await self._query_index(
            base_url,
            {"limit": str(self.candidate_limit), "collapse": "digest", "sort": "desc"},
        )
        for row in rows:
            timestamp = row[0]
            try:
                resource = await self.fetcher.fetch_page(timestamp, base_url, attempts=1)
            except FetchFailure as exc:
                logger.info("Skipping capture %s: %s", timestamp, exc)
                continue
            assets = count_stable_assets(resource.text())
            logger.info("Capture %s has %d asset references", timestamp, assets)
            if assets >= self.stable_threshold:
                return ResolvedSnapshot(
                    timestamp,
                    base_url,
                    f"auto-picked latest stable capture (assets={assets})",
                )
        raise NoCaptureFound(f"No stable Wayback capture found for {base_url}")

    async def _query_index(self, base_url: str, extra: Dict[str, str]) -> List[List[str]]:
        params = {
            "url": base_url,
            "output": "json",
            "fl": CDX_FIELDS,
            "filter": "statuscode:200",
        }
        params.update(extra)
        try:
            response = await self.client.get(config.CDX_API, params=params, timeout=self.fetcher.timeout)
            response.raise_for_status()
            data = response.json() if response.content.strip() else []
        except (httpx.HTTPError, ValueError) as exc:
            raise NoCaptureFound(f"Capture index query failed for {base_url}: {exc}") from exc

        if not isinstance(data, list) or len(data) < 2:
            return []
        return [
            row
            for row in data[1:]
            if isinstance(row, list) and row and str(row[0]).isdigit() and len(str(row[0])) == 14
        ]


async def resolve_timestamp(
    request: SnapshotRequest,
    client: Optional[httpx.AsyncClient] = None,
) -> ResolvedSnapshot:
    if client is not None:
        return await TimestampResolver(client).resolve(request)
    async with build_client() as owned:
        return await TimestampResolver(owned).resolve(request)
