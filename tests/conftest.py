# tests/conftest.py
from __future__ import annotations

import contextlib
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import unquote

import pytest

# ---------- import helpers ----------
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from models import TreeIndex  # noqa: E402
from utils.api import ApiError, LayerVaultAPI  # noqa: E402

API_BASE = "https://api.layervault.test"
ASSET_BASE = "https://assets.layervault.test"


def node(entity_id: Any, links: Optional[Dict[str, Any]] = None, **fields: Any) -> Dict[str, Any]:
    """Build an API-shaped entity: {"id": ..., <fields>, "links": {...}}."""
    out: Dict[str, Any] = {"id": entity_id}
    out.update(fields)
    out["links"] = dict(links or {})
    return out


def make_index(entities: Dict[str, Iterable[Dict[str, Any]]]) -> TreeIndex:
    index = TreeIndex()
    for entity_type, items in entities.items():
        index.add(entity_type, items)
    return index


# ---------- the LayerVault test double ----------
class FakeLayerVault:
    """
    Record-only stand-in for LayerVaultAPI.get_json.

    Serves "/api/v2/<type>/<id,id,...>" from an in-memory store and records every call as
    (type, [ids]). Ids missing from the store are simply not returned. Types listed in
    `fail_types` raise ApiError, like a non-200 response would.
    """

    def __init__(self, entities: Dict[str, Iterable[Dict[str, Any]]], fail_types: Optional[Set[str]] = None):
        self.store = {t: {str(e["id"]): e for e in items} for t, items in entities.items()}
        self.fail_types = set(fail_types or ())
        self.calls: List[Tuple[str, List[str]]] = []
        self._lock = threading.Lock()

    def get_json(self, endpoint: str, params=None) -> Dict[str, Any]:
        parts = endpoint.strip("/").split("/")
        entity_type, raw_ids = parts[-2], unquote(parts[-1])
        ids = raw_ids.split(",")
        with self._lock:
            self.calls.append((entity_type, ids))
        if entity_type in self.fail_types:
            raise ApiError("boom", url=endpoint, status=500)
        bucket = self.store.get(entity_type, {})
        return {entity_type: [bucket[i] for i in ids if i in bucket]}

    def calls_for(self, entity_type: str) -> List[List[str]]:
        return [ids for t, ids in self.calls if t == entity_type]


# ---------- common fixtures ----------
@pytest.fixture(autouse=True)
def _no_sleep_and_no_jitter(monkeypatch):
    # Make retries instant & deterministic
    monkeypatch.setattr("utils.api.time.sleep", lambda *_: None)
    monkeypatch.setattr("utils.api.random.uniform", lambda *_: 0.0)


@pytest.fixture
def api() -> LayerVaultAPI:
    return LayerVaultAPI(API_BASE, "TEST")


@pytest.fixture
def attach_caplog(caplog):
    """Attach caplog.handler to a named logger (setup_logging turns propagation off)."""

    @contextlib.contextmanager
    def _attach(name: str, level: int = logging.DEBUG):
        logger = logging.getLogger(name)
        logger.addHandler(caplog.handler)
        old_level = logger.level
        logger.setLevel(level)
        try:
            yield caplog
        finally:
            logger.setLevel(old_level)
            logger.removeHandler(caplog.handler)

    return _attach
