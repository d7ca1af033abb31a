from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import BinaryIO, Union
from urllib.parse import urlparse

from paths import safe_name


def zip_name(base_url: str, timestamp: str) -> str:
    return f"site_{safe_name(urlparse(base_url).netloc)}_{timestamp}.zip"


def zip_directory(source_dir: Union[str, Path], target: Union[str, Path, BinaryIO, None] = None):
    """Zip every file under ``source_dir`` with paths relative to it.

    Returns the target path, or an in-memory buffer positioned at 0 when no
    target is given.
    """
    source = Path(source_dir)
    buffer = io.BytesIO() if target is None else None
    dest = buffer if buffer is not None else target
    with zipfile.ZipFile(dest, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        for path in sorted(source.rglob("*")):
            if path.is_file():
                archive.write(path, path.relative_to(source).as_posix())
    if buffer is not None:
        buffer.seek(0)
        return buffer
    return target
