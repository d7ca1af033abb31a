from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, Tuple, Type, TypeVar

import httpx

import config
from errors import FetchFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]

IDENTITY_MODE = "id_"
DEFAULT_MODE = ""
IMAGE_MODE = "im_"
# id_ first: the archive's own rewriting corrupts stylesheet text
ASSET_MODES = (IDENTITY_MODE, DEFAULT_MODE, IMAGE_MODE)
PAGE_MODES = (IDENTITY_MODE,)

HTML_MIMES = ("text/html", "application/xhtml+xml")


@dataclass
class FetchedResource:
    body: bytes
    content_type: str

    @property
    def mime(self) -> str:
        return self.content_type.split(";")[0].strip().lower()

    @property
    def is_html(self) -> bool:
        if self.mime in HTML_MIMES:
            return True
        if self.mime:
            return False
        head = self.body[:512].lstrip().lower()
        return head.startswith((b"<!doctype html", b"<html"))

    def text(self) -> str:
        for encoding in ("utf-8", "latin-1"):
            try:
                return self.body.decode(encoding)
            except UnicodeDecodeError:
                continue
        return self.body.decode("utf-8", errors="ignore")


def wayback_url(timestamp: str, original_url: str, mode: str = DEFAULT_MODE) -> str:
    return f"{config.WAYBACK_ROOT}/web/{timestamp}{mode}/{original_url}"


def build_client(timeout: float = config.FETCH_TIMEOUT_SECONDS) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        headers={"User-Agent": config.USER_AGENT},
    )


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    backoff: float,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation`` up to ``attempts`` times, sleeping ``backoff * n`` after failure n."""
    attempts = max(1, attempts)
    last_exc: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            last_exc = exc
            if attempt < attempts:
                delay = backoff * attempt
                if on_retry is not None:
                    on_retry(attempt, exc, delay)
                await sleep(delay)

    if last_exc is not None:
        raise last_exc
    raise RuntimeError("Retry loop finished without a result")


class SnapshotFetcher:
    """Fetches resources pinned to one snapshot timestamp."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout: float = config.FETCH_TIMEOUT_SECONDS,
        attempts: int = config.FETCH_ATTEMPTS,
        backoff: float = config.FETCH_BACKOFF_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.client = client
        self.timeout = timeout
        self.attempts = attempts
        self.backoff = backoff
        self._sleep = sleep

    async def fetch(self, timestamp: str, url: str) -> FetchedResource:
        return await self._fetch_with_retries(timestamp, url, ASSET_MODES, self.attempts)

    async def fetch_page(self, timestamp: str, url: str, attempts: Optional[int] = None) -> FetchedResource:
        return await self._fetch_with_retries(
            timestamp, url, PAGE_MODES, self.attempts if attempts is None else attempts
        )

    async def _fetch_with_retries(
        self,
        timestamp: str,
        url: str,
        modes: Sequence[str],
        attempts: int,
    ) -> FetchedResource:
        def _log_retry(attempt: int, exc: BaseException, delay: float) -> None:
            logger.warning("Retry %d/%d for %s in %.1fs: %s", attempt, attempts, url, delay, exc)

        return await retry_with_backoff(
            lambda: self._fetch_first_mode(timestamp, url, modes),
            attempts=attempts,
            backoff=self.backoff,
            retry_on=(FetchFailure,),
            on_retry=_log_retry,
            sleep=self._sleep,
        )

    async def _fetch_first_mode(self, timestamp: str, url: str, modes: Sequence[str]) -> FetchedResource:
        last_error = "no fetch modes configured"
        for mode in modes:
            archive_url = wayback_url(timestamp, url, mode)
            try:
                return await asyncio.wait_for(self._get(archive_url), timeout=self.timeout)
            except asyncio.TimeoutError:
                last_error = f"timed out after {self.timeout:g}s"
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                last_error = str(exc) or exc.__class__.__name__
            logger.debug("Mode %r failed for %s: %s", mode or "default", url, last_error)
        raise FetchFailure(url, last_error)

    async def _get(self, archive_url: str) -> FetchedResource:
        response = await self.client.get(archive_url, follow_redirects=True, timeout=self.timeout)
        if not response.is_success:
            raise httpx.HTTPStatusError(
                f"HTTP {response.status_code}", request=response.request, response=response
            )
        return FetchedResource(
            body=response.content,
            content_type=response.headers.get("content-type", ""),
        )
