#!/usr/bin/env python3
"""
LayerVault organization export runner.

Usage:
  python scripts/run_export.py USER PASSWORD CLIENT_ID CLIENT_SECRET ORG_ID -v
  python scripts/run_export.py USER PASSWORD CLIENT_ID CLIENT_SECRET ORG_ID \
      --max-ids-per-request 200 --testing-limit 5 --skip-file-assets

Exit codes: 0 ok, 1 authentication failed, 2 usage error, 3 tree fetch failed.
"""

from __future__ import annotations
import argparse
import sys
from pathlib import Path
from typing import List, Optional

import requests

# --- ensure repo root on sys.path ---
THIS_FILE = Path(__file__).resolve()
REPO_ROOT = THIS_FILE.parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from logging_setup import setup_logging, get_logger
from export.export_organization import export_organization
from models import ExportConfig
from utils.api import ApiError, DEFAULT_API_URL, LayerVaultAPI
from utils.auth import AuthError, fetch_token

EXIT_OK = 0
EXIT_AUTH = 1
EXIT_FETCH = 3


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Export a LayerVault organization to a directory tree")
    p.add_argument("user", help="LayerVault user name (email)")
    p.add_argument("password", help="LayerVault password")
    p.add_argument("client_id", help="OAuth client id")
    p.add_argument("client_secret", help="OAuth client secret")
    p.add_argument("organization_id", help="Id of the organization to export")
    p.add_argument("--max-ids-per-request", "--maxIdsPerRequest", dest="max_ids_per_request",
                   type=int, default=400, help="Ids per batch request (default: 400)")
    p.add_argument("--testing-limit", "--testingLimit", dest="testing_limit",
                   type=int, default=0, help="Only fetch the first N ids of every level (0 = unlimited)")
    p.add_argument("--max-concurrent-requests", "--maxConcurrentRequests", dest="max_concurrent_requests",
                   type=int, default=10, help="Concurrent asset downloads (default: 10)")
    p.add_argument("--skip-file-assets", "--skipFileAssets", dest="skip_file_assets",
                   action="store_true", help="Write metadata only; do not download revisions or previews")
    p.add_argument("--output-root", type=Path, default=Path("out"), help="Where run folders are created (default: out)")
    p.add_argument("--api-url", default=DEFAULT_API_URL, help=f"API host (default: {DEFAULT_API_URL})")
    p.add_argument("-v", "--verbose", action="count", default=1, help="More output (-v for debug)")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    try:
        config = ExportConfig(
            max_ids_per_request=args.max_ids_per_request,
            testing_limit=args.testing_limit,
            max_concurrent_requests=args.max_concurrent_requests,
            skip_file_assets=args.skip_file_assets,
            output_root=args.output_root,
        )
    except ValueError as e:
        p.error(str(e))

    setup_logging(verbosity=min(args.verbose, 2))
    log = get_logger(entity="runner", org_id=args.organization_id)

    try:
        token = fetch_token(args.user, args.password, args.client_id, args.client_secret, base_url=args.api_url)
    except AuthError as e:
        log.error("✗ authentication failed: %s", e, extra={"error": str(e)})
        return EXIT_AUTH

    api = LayerVaultAPI(args.api_url, token)
    try:
        run_root = export_organization(args.organization_id, api, config)
    except (ApiError, requests.RequestException) as e:
        log.error("✗ export aborted while loading the tree: %s", e, extra={"error": str(e)})
        return EXIT_FETCH

    log.info("✓ export written", extra={"path": str(run_root)})
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
