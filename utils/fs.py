# utils/fs.py

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable


def ensure_dir(path: Path) -> None:
    """Create directory (and parents) if missing."""
    path.mkdir(parents=True, exist_ok=True)


def atomic_write(path: Path, data: str | bytes) -> None:
    """
    Write to a temp file in the same dir then atomic-rename.
    Prevents partial files if the process dies mid-write.
    """
    ensure_dir(path.parent)
    mode = "wb" if isinstance(data, (bytes, bytearray)) else "w"
    encoding = None if "b" in mode else "utf-8"

    tmp_fd, tmp_name = tempfile.mkstemp(dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(tmp_fd, mode, encoding=encoding) as f:
            f.write(data)  # type: ignore[arg-type]
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def stream_to_path(chunks: Iterable[bytes], dest: Path) -> int:
    """
    Stream byte chunks into dest via a temp file in the same directory, then replace.
    Returns the number of bytes written.
    """
    ensure_dir(dest.parent)
    tmp_fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=".part-")
    tmp_path = Path(tmp_name)
    written = 0
    try:
        with os.fdopen(tmp_fd, "wb") as out:
            for chunk in chunks:
                if chunk:
                    out.write(chunk)
                    written += len(chunk)
        os.replace(tmp_path, dest)
    finally:
        tmp_path.unlink(missing_ok=True)
    return written


def append_line(path: Path, line: str) -> None:
    """Append text to path, creating the file (and parents) on first write."""
    ensure_dir(path.parent)
    with path.open("a", encoding="utf-8") as f:
        f.write(line)


def json_dumps_pretty(obj: Any) -> str:
    """Two-space indented JSON in the payload's own key order, UTF-8, trailing newline."""
    return json.dumps(obj, indent=2, ensure_ascii=False) + "\n"
