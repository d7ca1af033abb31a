from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import config
from bundle import zip_directory, zip_name
from crawler import restore
from errors import RestoreError
from fetcher import build_client
from resolver import SnapshotRequest, TimestampResolver


async def _run(args: argparse.Namespace) -> int:
    request = SnapshotRequest(source_url=args.url, target_date=args.date, archived_url=args.wayback)
    async with build_client() as client:
        snapshot = await TimestampResolver(client).resolve(request)
        output_dir = Path(args.output) if args.output else (
            config.OUTPUT_ROOT_DIR / Path(zip_name(snapshot.base_url, snapshot.timestamp)).stem
        )
        report = await restore(
            snapshot.base_url,
            snapshot.timestamp,
            output_dir,
            max_pages=args.max_pages,
            pick_reason=snapshot.pick_reason,
            client=client,
        )

    print(f"Timestamp: {snapshot.timestamp} ({snapshot.pick_reason})")
    print(f"Pages saved: {report.pages_saved}, assets saved: {report.assets_saved}, missing: {len(report.missing)}")
    print(f"Output: {output_dir}")
    if args.zip:
        zip_path = output_dir.parent / zip_name(snapshot.base_url, snapshot.timestamp)
        zip_directory(output_dir, zip_path)
        print(f"ZIP: {zip_path}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Restore a browsable local copy of an archived website.")
    parser.add_argument("url", help="Site URL, e.g. https://example.com/")
    parser.add_argument("--date", default="", help="Pick the capture closest to this day (YYYY-MM-DD)")
    parser.add_argument("--wayback", default="", help="Archived URL to take the timestamp from")
    parser.add_argument("--max-pages", type=config.clamp_max_pages, default=config.DEFAULT_MAX_PAGES, help="Page ceiling (1-5000)")
    parser.add_argument("--output", default="", help="Output directory (default: under OUTPUT_ROOT_DIR)")
    parser.add_argument("--zip", action="store_true", help="Also write a ZIP next to the output directory")
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        return asyncio.run(_run(args))
    except RestoreError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
