from __future__ import annotations

import asyncio
import html
import logging
import os
import secrets
import shutil
from pathlib import Path

from flask import Flask, Response, render_template_string, request, send_file

import config
from bundle import zip_directory, zip_name
from crawler import restore
from errors import RestoreError
from resolver import SnapshotRequest, resolve_timestamp

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = Flask(__name__)

INDEX_TEMPLATE = """<!doctype html>
<html>
<head><meta charset="utf-8"/><title>Wayback Site Restore</title></head>
<body>
  <h2>Wayback Site Restore</h2>
  <p>Domain URL only, or Domain + Date (YYYY-MM-DD), or a Wayback URL.</p>
  <form method="POST" action="/restore">
    <label>Domain URL <input name="url" placeholder="https://example.com/" required /></label><br/>
    <label>Date (optional) <input name="date" placeholder="2025-02-28" /></label><br/>
    <label>Wayback URL (optional) <input name="wayback" placeholder="https://web.archive.org/web/20250228153124/https://example.com/" /></label><br/>
    <label>Max Pages <input name="maxPages" placeholder="{{ default_max_pages }}" /></label><br/>
    <button type="submit">Restore &amp; Download ZIP</button>
  </form>
</body>
</html>
"""


def _error_response(message: str, status: int = 400) -> Response:
    body = f'<pre style="font-family:ui-monospace,Consolas">{html.escape(message)}</pre>'
    return Response(body, status=status, mimetype="text/html")


def _job_dir() -> Path:
    return config.OUTPUT_ROOT_DIR / f"wb-site-{secrets.token_hex(6)}"


async def _resolve_and_restore(snapshot_request: SnapshotRequest, max_pages: int, out_dir: Path):
    snapshot = await resolve_timestamp(snapshot_request)
    logger.info(
        "Restore request: base=%s timestamp=%s reason=%s max_pages=%d",
        snapshot.base_url,
        snapshot.timestamp,
        snapshot.pick_reason,
        max_pages,
    )
    await restore(
        snapshot.base_url,
        snapshot.timestamp,
        out_dir,
        max_pages=max_pages,
        pick_reason=snapshot.pick_reason,
    )
    return snapshot


@app.get("/")
def index():
    return render_template_string(INDEX_TEMPLATE, default_max_pages=config.DEFAULT_MAX_PAGES)


@app.post("/restore")
def restore_site():
    url = (request.form.get("url") or "").strip()
    if not url:
        return _error_response("Please provide a valid URL (http/https).")
    snapshot_request = SnapshotRequest(
        source_url=url,
        target_date=(request.form.get("date") or "").strip(),
        archived_url=(request.form.get("wayback") or "").strip(),
    )
    max_pages = config.clamp_max_pages(request.form.get("maxPages") or config.DEFAULT_MAX_PAGES)

    out_dir = _job_dir()
    try:
        snapshot = asyncio.run(_resolve_and_restore(snapshot_request, max_pages, out_dir))
        buffer = zip_directory(out_dir)
    except RestoreError as exc:
        logger.warning("Restore rejected for %s: %s", url, exc)
        return _error_response(str(exc))
    except Exception as exc:
        logger.exception("Restore failed for %s", url)
        return _error_response(str(exc) or exc.__class__.__name__)
    finally:
        if not config.KEEP_OUTPUT:
            shutil.rmtree(out_dir, ignore_errors=True)

    name = zip_name(snapshot.base_url, snapshot.timestamp)
    logger.info("Streaming %s", name)
    return send_file(buffer, mimetype="application/zip", as_attachment=True, download_name=name)


if __name__ == "__main__":
    host = os.environ.get("HOST", "127.0.0.1")
    port = int(os.environ.get("PORT", "5000"))
    debug = config.parse_bool(os.environ.get("FLASK_DEBUG"), default=False)
    app.run(host=host, port=port, debug=debug, use_reloader=False, threaded=True)
