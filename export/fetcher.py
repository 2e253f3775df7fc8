# export/fetcher.py
from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any, Dict, List, Mapping, Sequence, Tuple
from urllib.parse import quote

from export.registry import REGISTRY, TypeDescriptor
from models import Entity
from utils.api import ApiError, LayerVaultAPI

log = logging.getLogger(__name__)


def chunk_ids(ids: Sequence[Any], size: int) -> List[List[Any]]:
    """Consecutive slices of at most `size` ids."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [list(ids[i:i + size]) for i in range(0, len(ids), size)]


def endpoint_for(descriptor: TypeDescriptor, ids: Sequence[Any]) -> str:
    joined = ",".join(str(i) for i in ids)
    return descriptor.endpoint.format(ids=quote(joined, safe=","))


class PagedFetcher:
    """
    Fetch entities by id in request-size-limited batches.

    Every batch of one call (or of all types in `fetch_many`) runs on a bounded thread pool;
    the call returns only when all batches succeeded, and the first failure cancels what is
    still queued and propagates.
    """

    def __init__(
        self,
        api: LayerVaultAPI,
        *,
        max_ids_per_request: int = 400,
        testing_limit: int = 0,
        max_workers: int = 8,
        registry: Mapping[str, TypeDescriptor] = REGISTRY,
    ) -> None:
        if max_ids_per_request < 1:
            raise ValueError("max_ids_per_request must be >= 1")
        self.api = api
        self.max_ids_per_request = max_ids_per_request
        self.testing_limit = testing_limit
        self.max_workers = max(1, max_workers)
        self.registry = registry

    def fetch(self, entity_type: str, ids: Sequence[Any]) -> List[Entity]:
        return self.fetch_many({entity_type: ids}).get(entity_type, [])

    def fetch_many(self, requests_by_type: Mapping[str, Sequence[Any]]) -> Dict[str, List[Entity]]:
        results: Dict[str, List[Entity]] = {t: [] for t in requests_by_type}

        batches: List[Tuple[str, List[Any]]] = []
        for entity_type, ids in requests_by_type.items():
            ids = list(ids)
            if self.testing_limit:
                ids = ids[: self.testing_limit]
            if not ids:
                continue
            log.info(
                "fetching %s %s", len(ids), entity_type,
                extra={"endpoint": self.registry[entity_type].endpoint},
            )
            batches.extend((entity_type, chunk) for chunk in chunk_ids(ids, self.max_ids_per_request))

        if not batches:
            return results

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(batches))) as pool:
            futures: Dict[Future, str] = {
                pool.submit(self._fetch_batch, entity_type, chunk): entity_type
                for entity_type, chunk in batches
            }
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for fut in pending:
                fut.cancel()
            for fut in done:
                err = fut.exception()
                if err is not None:
                    raise err
            # FIRST_EXCEPTION with nothing failed means every batch is in `done`
            for fut in done:
                results[futures[fut]].extend(fut.result())

        return results

    def _fetch_batch(self, entity_type: str, ids: List[Any]) -> List[Entity]:
        descriptor = self.registry[entity_type]
        endpoint = endpoint_for(descriptor, ids)
        data = self.api.get_json(endpoint)
        items = data.get(entity_type)
        if not isinstance(items, list):
            raise ApiError(f"response envelope has no '{entity_type}' list", url=endpoint)
        log.debug("fetched batch", extra={"type": entity_type, "requested": len(ids), "returned": len(items)})
        return items
