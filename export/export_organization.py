# export/export_organization.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from export.downloads import DownloadQueue
from export.fetcher import PagedFetcher
from export.loader import TreeLoader
from export.serializer import TreeSerializer
from logging_setup import get_logger
from models import ExportConfig
from utils.api import LayerVaultAPI
from utils.dates import now_utc_iso, run_folder_name
from utils.fs import atomic_write, ensure_dir, json_dumps_pretty

ROOT_TYPE = "organizations"
MANIFEST_FILE = "export_manifest.json"


def export_organization(
    org_id: str,
    api: LayerVaultAPI,
    config: Optional[ExportConfig] = None,
    *,
    run_name: Optional[str] = None,
) -> Path:
    """
    Export one organization's tree.

    Layout:
      <output_root>/<YYYYmmdd-HHMMSS>/<org name>/...   (see export.serializer)
                                     └─ export_manifest.json

    The whole tree is loaded before anything touches disk; a fetch failure raises and
    leaves no run folder behind. Assets are queued while serializing and the queue is
    drained before this returns. Returns the run folder.
    """
    config = config or ExportConfig()
    log = get_logger(entity=ROOT_TYPE, org_id=org_id)
    started_at = now_utc_iso()

    log.info("starting fetch")
    fetcher = PagedFetcher(
        api,
        max_ids_per_request=config.max_ids_per_request,
        testing_limit=config.testing_limit,
        max_workers=config.max_parallel_fetches,
    )
    loader = TreeLoader(fetcher)
    index = loader.load(ROOT_TYPE, [org_id])
    if not index.values(ROOT_TYPE):
        log.warning("organization %s not returned by the API; nothing to export", org_id)

    run_root = config.output_root / (run_name or run_folder_name())
    ensure_dir(run_root)
    log.info("starting post process", extra={"path": str(run_root), "levels": loader.levels})

    download_stats: Dict[str, Any] = {}
    if config.skip_file_assets:
        serializer = TreeSerializer(index, None, org_id=org_id)
        serializer.serialize(run_root, ROOT_TYPE)
    else:
        with DownloadQueue(api, config.max_concurrent_requests, org_id=org_id) as downloads:
            serializer = TreeSerializer(index, downloads, org_id=org_id)
            serializer.serialize(run_root, ROOT_TYPE)
        download_stats = downloads.stats()

    manifest = {
        "organization_id": org_id,
        "started_at": started_at,
        "finished_at": now_utc_iso(),
        "levels": loader.levels,
        "counts": index.counts(),
        "nodes_written": serializer.nodes_written,
        "dangling_references": serializer.dangling,
        "downloads": download_stats,
        "settings": {
            "max_ids_per_request": config.max_ids_per_request,
            "testing_limit": config.testing_limit,
            "max_concurrent_requests": config.max_concurrent_requests,
            "skip_file_assets": config.skip_file_assets,
        },
    }
    atomic_write(run_root / MANIFEST_FILE, json_dumps_pretty(manifest))

    log.info("export complete", extra={"path": str(run_root), "counts": manifest["counts"]})
    return run_root
