from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List

import config

logger = logging.getLogger(__name__)

REPORT_NAME = "report.txt"


@dataclass
class RunReport:
    base_url: str
    timestamp: str
    pick_reason: str = ""
    pages_saved: int = 0
    assets_saved: int = 0
    lines: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    def log(self, message: str) -> None:
        stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        self.lines.append(f"[{stamp}] {message}")
        logger.info(message)

    def record_missing(self, url: str, label: str = "ITEM") -> None:
        self.missing.append(url)
        self.log(f"MISS {label}: {url}")

    def render(self, missing_limit: int = config.REPORT_MISSING_LIMIT) -> str:
        header = [
            "Wayback Site Restore Report",
            f"Base URL: {self.base_url}",
            f"Timestamp: {self.timestamp}",
            f"Pick reason: {self.pick_reason}",
            f"Pages saved: {self.pages_saved}",
            f"Assets saved: {self.assets_saved}",
            f"Missing items: {len(self.missing)}",
        ]
        return (
            "\n".join(header)
            + "\n\n--- LOGS ---\n"
            + "\n".join(self.lines)
            + f"\n\n--- MISSING (first {missing_limit}) ---\n"
            + "\n".join(self.missing[:missing_limit])
            + "\n"
        )

    def write(self, output_dir: Path) -> Path:
        path = Path(output_dir) / REPORT_NAME
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(), encoding="utf-8")
        return path
