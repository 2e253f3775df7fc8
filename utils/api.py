# utils/api.py
from __future__ import annotations

import os
import time
import requests
import logging
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Dict, Any, Optional, Union
from urllib.parse import urljoin

from dotenv import load_dotenv

from models import AccessToken

REPO_ROOT = Path(__file__).resolve().parents[1]


def _load_env_if_opted_in() -> None:
    """
    Only load .env files when explicitly opted in.
    - Set LAYERVAULT_DOTENV_LOAD=1 to enable
    - LAYERVAULT_DOTENV_DISABLE=1 always disables
    """
    if os.getenv("LAYERVAULT_DOTENV_DISABLE") == "1":
        return
    if os.getenv("LAYERVAULT_DOTENV_LOAD") != "1":
        return

    # Repo defaults, then local overrides
    load_dotenv(str(REPO_ROOT / ".env"))
    load_dotenv(str(REPO_ROOT / ".env.local"), override=True)

# Do NOT load by default; tests control the environment.
_load_env_if_opted_in()

# --- Tunables ---------------------------------------------------------------
DEFAULT_API_URL = os.getenv("LAYERVAULT_API_URL") or "https://api.layervault.com"
DEFAULT_TIMEOUT: tuple[float, float] = (5, 30)  # (connect, read) seconds
USER_AGENT = "LayerVaultExport/1.0"
API_PREFIX = "/api/v2"

# Metadata requests: exponential backoff with jitter.
MAX_ATTEMPTS = 4
# Asset requests: fixed delay between attempts.
ASSET_MAX_ATTEMPTS = 5
ASSET_RETRY_DELAY = 1.0

# e.g. LAYERVAULT_HTTP_TIMEOUT="10,300"
_to = os.getenv("LAYERVAULT_HTTP_TIMEOUT")
if _to:
    try:
        parts = [float(p.strip()) for p in _to.split(",")]
        if len(parts) == 2:
            DEFAULT_TIMEOUT = (parts[0], parts[1])  # type: ignore[assignment]
    except ValueError:
        logging.getLogger(__name__).warning("ignoring malformed LAYERVAULT_HTTP_TIMEOUT=%r", _to)

log = logging.getLogger(__name__)


def _retry_after_seconds(value: Optional[str], default: float) -> float:
    """Retry-After is either delta-seconds or an HTTP date; anything else means `default`."""
    if not value:
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class ApiError(RuntimeError):
    """A metadata request came back unusable (bad status, empty or non-object body)."""

    def __init__(self, message: str, *, url: str = "", status: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class LayerVaultAPI:
    def __init__(self, base_url: str | None, token: Union[AccessToken, str, None]) -> None:
        if not base_url or not token:
            raise ValueError("LayerVaultAPI base_url and token are required")

        base = base_url.rstrip("/")
        # Keep exactly one /api/v2 on the API root
        if base.endswith(API_PREFIX):
            api_root = base
            host_root = base[: -len(API_PREFIX)]
        else:
            api_root = base + API_PREFIX
            host_root = base

        self.base_url = host_root + "/"
        self.api_root = api_root + "/"

        bearer = token.access_token if isinstance(token, AccessToken) else token
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {bearer}",
            "User-Agent": USER_AGENT,
        })

    # Accept endpoints with or without /api/v2
    def _full_url(self, endpoint: str) -> str:
        ep = (endpoint or "").strip()
        if ep.startswith("http://") or ep.startswith("https://"):
            return ep
        if ep.startswith(API_PREFIX):
            ep = ep[len(API_PREFIX):]
        ep = ep.lstrip("/")
        return urljoin(self.api_root, ep)

    # Basic retry/backoff for 429/5xx + timeouts
    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        delay = 1.0
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                resp = self.session.request(method, url, timeout=DEFAULT_TIMEOUT, **kwargs)

                if resp.status_code == 429 and attempt < MAX_ATTEMPTS:
                    retry_after = _retry_after_seconds(resp.headers.get("Retry-After"), delay)
                    jitter = random.uniform(0, 0.25 * retry_after)
                    wait_time = retry_after + jitter
                    log.warning(
                        "Rate limited: 429 received from %s. Retrying after %.2fs (attempt %s/%s)",
                        url, wait_time, attempt, MAX_ATTEMPTS,
                        extra={"url": url, "retry_after": retry_after},
                    )
                    time.sleep(wait_time)
                    continue

                resp.raise_for_status()
                return resp

            except requests.HTTPError as e:
                status = getattr(e.response, "status_code", None)
                if status and status >= 500 and attempt < MAX_ATTEMPTS:
                    jitter = random.uniform(0, 0.25 * delay)
                    wait_time = delay + jitter
                    log.warning(
                        "Server error %s from %s. Retrying after %.2fs (attempt %s/%s)",
                        status, url, wait_time, attempt, MAX_ATTEMPTS,
                        extra={"url": url},
                    )
                    time.sleep(wait_time)
                    delay *= 2
                    continue
                raise

            except (requests.ConnectionError, requests.Timeout):
                if attempt < MAX_ATTEMPTS:
                    jitter = random.uniform(0, 0.25 * delay)
                    wait_time = delay + jitter
                    log.warning(
                        "Connection/timeout error for %s. Retrying after %.2fs (attempt %s/%s)",
                        url, wait_time, attempt, MAX_ATTEMPTS,
                        extra={"url": url},
                    )
                    time.sleep(wait_time)
                    delay *= 2
                    continue
                raise
        raise ApiError("retries exhausted", url=url)

    def get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        GET a metadata endpoint and return the decoded envelope.
        Anything but a 200 with a non-empty JSON object body raises.
        """
        url = self._full_url(endpoint)
        r = self._request("GET", url, params=params)
        if r.status_code != 200:
            raise ApiError(f"unexpected status {r.status_code}", url=url, status=r.status_code)
        if not r.content:
            raise ApiError("empty response body", url=url, status=r.status_code)
        try:
            data = r.json()
        except ValueError as e:
            raise ApiError(f"invalid JSON body: {e}", url=url, status=r.status_code) from e
        if not isinstance(data, dict):
            raise ApiError("expected a JSON object envelope", url=url, status=r.status_code)
        return data

    def get_asset(self, url: str) -> requests.Response:
        """
        Streamed, authenticated GET for a binary asset.
        Retries connection errors, timeouts and 5xx with a fixed delay; any other status
        (including 404) is returned to the caller unread. Close the response when done.
        """
        last_err: Exception | None = None
        for attempt in range(1, ASSET_MAX_ATTEMPTS + 1):
            try:
                resp = self.session.get(url, stream=True, timeout=DEFAULT_TIMEOUT)
                if resp.status_code >= 500 and attempt < ASSET_MAX_ATTEMPTS:
                    resp.close()
                    log.warning(
                        "Asset server error %s from %s. Retrying after %.2fs (attempt %s/%s)",
                        resp.status_code, url, ASSET_RETRY_DELAY, attempt, ASSET_MAX_ATTEMPTS,
                        extra={"url": url},
                    )
                    time.sleep(ASSET_RETRY_DELAY)
                    continue
                return resp
            except (requests.ConnectionError, requests.Timeout) as e:
                last_err = e
                if attempt < ASSET_MAX_ATTEMPTS:
                    log.warning(
                        "Asset connection/timeout error for %s. Retrying after %.2fs (attempt %s/%s)",
                        url, ASSET_RETRY_DELAY, attempt, ASSET_MAX_ATTEMPTS,
                        extra={"url": url},
                    )
                    time.sleep(ASSET_RETRY_DELAY)
                    continue
        raise last_err or ApiError("asset retries exhausted", url=url)


__all__ = [
    "ApiError",
    "LayerVaultAPI",
    "DEFAULT_API_URL",
    "DEFAULT_TIMEOUT",
    "USER_AGENT",
    "API_PREFIX",
]
