"""URL helpers and the deterministic URL -> local path mapping.

Pages live under ``pages/<host>/`` and assets under ``assets/<host>/``. A
``PathTable`` memoizes the mapping for one job so every consumer of a URL sees
the same local path.
"""
from __future__ import annotations

import hashlib
import posixpath
import re
from enum import Enum
from typing import Dict, Iterator, Optional, Set, Tuple
from urllib.parse import unquote, urljoin, urlparse, urlunparse

PAGES_ROOT = "pages"
ASSETS_ROOT = "assets"
ROOT_INDEX = "index.html"

BAD_SCHEMES = ("javascript:", "mailto:", "tel:", "data:", "#")
SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")
DEFAULT_PORTS = {"http": 80, "https": 443}

EXTENSION_BY_MIME = {
    "text/css": ".css",
    "text/javascript": ".js",
    "application/javascript": ".js",
    "application/x-javascript": ".js",
    "application/json": ".json",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/gif": ".gif",
    "image/svg+xml": ".svg",
    "image/webp": ".webp",
    "image/x-icon": ".ico",
    "image/vnd.microsoft.icon": ".ico",
    "font/woff2": ".woff2",
    "font/woff": ".woff",
    "text/html": ".html",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "application/pdf": ".pdf",
}


class UrlKind(Enum):
    PAGE = "page"
    ASSET = "asset"


def safe_name(text: str) -> str:
    value = SAFE_NAME_RE.sub("_", text.strip())
    value = value.strip("._")
    return value or "file"


def clean_url(url: str) -> str:
    parsed = urlparse(url)
    return urlunparse((parsed.scheme, parsed.netloc, parsed.path or "/", "", parsed.query, ""))


def resolve_url(base_url: str, value: str) -> Optional[str]:
    """Resolve ``value`` against ``base_url``; None for non-fetchable references."""
    candidate = (value or "").strip()
    if not candidate:
        return None
    lowered = candidate.lower()
    if lowered.startswith(BAD_SCHEMES):
        return None

    try:
        resolved = urljoin(base_url, candidate)
        parsed = urlparse(resolved)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return clean_url(resolved)


def origin_of(url: str) -> Tuple[str, str, Optional[int]]:
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    try:
        port = parsed.port or DEFAULT_PORTS.get(scheme)
    except ValueError:
        port = None
    return scheme, (parsed.hostname or "").lower(), port


def is_same_origin(root_url: str, other_url: str) -> bool:
    return origin_of(root_url) == origin_of(other_url)


def extension_for_mime(content_type: str) -> str:
    mime = (content_type or "").split(";")[0].strip().lower()
    return EXTENSION_BY_MIME.get(mime, "")


def local_path_for(url: str, kind: UrlKind) -> str:
    parsed = urlparse(url)
    path = unquote(parsed.path or "/")
    parts = [safe_name(p) for p in path.split("/") if p]

    if not parts or path.endswith("/"):
        parts.append("index")

    stem, ext = posixpath.splitext(parts[-1])
    if kind is UrlKind.PAGE and not ext:
        ext = ".html"

    if parsed.query:
        query_hash = hashlib.sha1(parsed.query.encode("utf-8")).hexdigest()[:8]
        stem = f"{stem}__q_{query_hash}"
    parts[-1] = f"{stem}{ext}"

    root = PAGES_ROOT if kind is UrlKind.PAGE else ASSETS_ROOT
    return "/".join([root, safe_name(parsed.netloc)] + parts)


def relative_link(from_local: str, to_local: str) -> str:
    from_dir = posixpath.dirname(from_local) or "."
    rel = posixpath.relpath(to_local, from_dir)
    return rel if rel and rel != "." else "./"


class PathTable:
    """Write-once URL -> local path table for one kind of URL.

    A registered path can gain an inferred extension once, and only until a
    rewrite has consumed it.
    """

    def __init__(self, kind: UrlKind) -> None:
        self.kind = kind
        self._paths: Dict[str, str] = {}
        self._extended: Set[str] = set()
        self._consumed: Set[str] = set()

    def __contains__(self, url: object) -> bool:
        return url in self._paths

    def __len__(self) -> int:
        return len(self._paths)

    def __iter__(self) -> Iterator[str]:
        return iter(self._paths)

    def register(self, url: str) -> str:
        local = self._paths.get(url)
        if local is None:
            local = local_path_for(url, self.kind)
            self._paths[url] = local
        return local

    def get(self, url: str) -> Optional[str]:
        return self._paths.get(url)

    def consume(self, url: str) -> Optional[str]:
        local = self._paths.get(url)
        if local is not None:
            self._consumed.add(url)
        return local

    def extend(self, url: str, content_type: str) -> str:
        local = self.register(url)
        if url in self._extended or url in self._consumed:
            return local
        if posixpath.splitext(posixpath.basename(local))[1]:
            return local
        ext = extension_for_mime(content_type)
        if ext:
            local = f"{local}{ext}"
            self._paths[url] = local
            self._extended.add(url)
        return local
