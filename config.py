from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.environ.get(name) or "").strip()
    try:
        return float(raw)
    except ValueError:
        return default


WAYBACK_ROOT = os.environ.get("WAYBACK_ROOT", "https://web.archive.org").rstrip("/")
CDX_API = f"{WAYBACK_ROOT}/cdx/search/cdx"
USER_AGENT = os.environ.get("USER_AGENT", "wayback-site-restore/0.1 (+https://web.archive.org)")

FETCH_TIMEOUT_SECONDS = _env_float("FETCH_TIMEOUT_SECONDS", 30.0)
FETCH_ATTEMPTS = max(1, _env_int("FETCH_ATTEMPTS", 3))
FETCH_BACKOFF_SECONDS = _env_float("FETCH_BACKOFF_SECONDS", 1.0)

PAGE_BATCH_SIZE = max(1, _env_int("PAGE_BATCH_SIZE", 3))
BATCH_PAUSE_SECONDS = _env_float("BATCH_PAUSE_SECONDS", 0.5)
MAX_PAGES_LIMIT = 5000
DEFAULT_MAX_PAGES = 200

AUTO_CANDIDATE_LIMIT = _env_int("AUTO_CANDIDATE_LIMIT", 30)
STABLE_ASSET_THRESHOLD = _env_int("STABLE_ASSET_THRESHOLD", 10)
REPORT_MISSING_LIMIT = 500

CSS_RELATIVE_TO_STYLESHEET = parse_bool(os.environ.get("CSS_RELATIVE_TO_STYLESHEET"), default=False)

OUTPUT_ROOT_DIR = Path(
    os.environ.get("OUTPUT_ROOT_DIR", tempfile.gettempdir())
).expanduser().resolve()
KEEP_OUTPUT = parse_bool(os.environ.get("KEEP_OUTPUT"), default=False)
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"


def clamp_max_pages(value: object, default: int = DEFAULT_MAX_PAGES) -> int:
    try:
        num = int(str(value).strip())
    except (TypeError, ValueError):
        num = default
    return max(1, min(num, MAX_PAGES_LIMIT))
