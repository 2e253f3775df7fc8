# export/downloads.py
from __future__ import annotations

import queue
import re
import threading
from pathlib import Path
from typing import List, Optional
from urllib.parse import unquote

import requests

from logging_setup import get_logger
from models import DownloadTask
from utils.api import LayerVaultAPI
from utils.fs import stream_to_path
from utils.strings import safe_segment

CHUNK = 1024 * 1024  # 1 MiB
UNKNOWN_FILENAME = "fileWithUnknownName"

_extended_re = re.compile(r".*?''(.*)", flags=re.IGNORECASE)
_plain_re = re.compile(r'filename\s*=\s*"?([^";]+)"?', flags=re.IGNORECASE)

_STOP = object()


def filename_from_disposition(header: Optional[str]) -> Optional[str]:
    """
    Pull a file name out of a Content-Disposition header.
      attachment; filename*=UTF-8''Home%20Screen.png  -> 'Home Screen.png'
      attachment; filename="logo.psd"                -> 'logo.psd'
    Returns None when there is nothing usable.
    """
    if not header:
        return None
    m = _extended_re.match(header) or _plain_re.search(header)
    if not m:
        return None
    name = unquote(m.group(1).strip().strip('"').split(";")[0].strip())
    if not name:
        return None
    return safe_segment(Path(name.replace("\\", "/")).name, fallback=UNKNOWN_FILENAME)


class DownloadQueue:
    """
    Bounded pool of download workers.

    `max_concurrent_requests` threads pull DownloadTasks from a FIFO queue, so at most that
    many downloads are ever in flight. A failed task is logged and dropped; it never stops
    the other workers. `close()` lets the workers drain what is queued and then joins them.

        with DownloadQueue(api, max_concurrent_requests=4) as q:
            q.enqueue(DownloadTask(url, folder, "preview.png"))
    """

    def __init__(self, api: LayerVaultAPI, max_concurrent_requests: int = 10, *, org_id: object = "-") -> None:
        if max_concurrent_requests < 1:
            raise ValueError("max_concurrent_requests must be >= 1")
        self.api = api
        self.max_concurrent_requests = max_concurrent_requests
        self.log = get_logger(entity="downloads", org_id=org_id)

        self._tasks: "queue.Queue[object]" = queue.Queue()
        self._lock = threading.Lock()
        self._workers: List[threading.Thread] = []
        self._closed = False

        self.in_flight = 0
        self.peak_in_flight = 0
        self.enqueued = 0
        self.completed = 0
        self.not_found = 0
        self.failed = 0

    # ---- lifecycle ----------------------------------------------------------

    def start(self) -> "DownloadQueue":
        with self._lock:
            if self._workers:
                return self
            for n in range(self.max_concurrent_requests):
                t = threading.Thread(target=self._worker, name=f"download-{n}", daemon=True)
                t.start()
                self._workers.append(t)
        return self

    def enqueue(self, task: DownloadTask) -> None:
        if self._closed:
            raise RuntimeError("download queue is closed")
        if not self._workers:
            self.start()
        with self._lock:
            self.enqueued += 1
        self._tasks.put(task)

    def close(self) -> None:
        """Stop accepting tasks, wait for queued ones to finish, and join the workers."""
        if self._closed:
            return
        self._closed = True
        for _ in self._workers:
            self._tasks.put(_STOP)
        for t in self._workers:
            t.join()
        self.log.info("downloads finished", extra=self.stats())

    def stats(self) -> dict:
        with self._lock:
            return {
                "enqueued": self.enqueued,
                "completed": self.completed,
                "not_found": self.not_found,
                "failed": self.failed,
                "peak_in_flight": self.peak_in_flight,
            }

    def __enter__(self) -> "DownloadQueue":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---- workers ------------------------------------------------------------

    def _worker(self) -> None:
        while True:
            task = self._tasks.get()
            try:
                if task is _STOP:
                    return
                self._run(task)  # type: ignore[arg-type]
            finally:
                self._tasks.task_done()

    def _run(self, task: DownloadTask) -> None:
        with self._lock:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        outcome = "failed"
        try:
            outcome = self._download(task)
        except Exception as e:
            self.log.error("download failed; dropping %s: %s", task.url, e, extra={"url": task.url, "error": str(e)})
        finally:
            with self._lock:
                self.in_flight -= 1
                if outcome == "completed":
                    self.completed += 1
                elif outcome == "not_found":
                    self.not_found += 1
                else:
                    self.failed += 1

    def _download(self, task: DownloadTask) -> str:
        self.log.debug("requesting file", extra={"url": task.url})
        resp = self.api.get_asset(task.url)
        with resp:
            if resp.status_code == 404:
                self.log.warning("not found: %s", task.url, extra={"url": task.url})
                return "not_found"
            try:
                resp.raise_for_status()
            except requests.HTTPError as e:
                self.log.error(
                    "download failed; dropping %s (HTTP %s)", task.url, resp.status_code,
                    extra={"url": task.url, "status": resp.status_code, "error": str(e)},
                )
                return "failed"

            filename = task.filename or self._filename_for(resp, task)
            dest = Path(task.destination) / filename
            size = stream_to_path(resp.iter_content(CHUNK), dest)

        self.log.info("file received", extra={"url": task.url, "path": str(dest), "bytes": size})
        return "completed"

    def _filename_for(self, resp: requests.Response, task: DownloadTask) -> str:
        header = resp.headers.get("content-disposition")
        name = filename_from_disposition(header)
        if name is None:
            self.log.warning(
                "no usable content-disposition for %s; using %s", task.url, UNKNOWN_FILENAME,
                extra={"url": task.url, "content_disposition": header},
            )
            return UNKNOWN_FILENAME
        return name
