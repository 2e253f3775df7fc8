# export/loader.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Sequence, Set

from export.fetcher import PagedFetcher
from export.registry import REGISTRY, TypeDescriptor
from models import TreeIndex, entity_key

log = logging.getLogger(__name__)


class TreeLoader:
    """
    Load an organization's tree into a TreeIndex, one breadth-first wave at a time.

    A wave fetches every (type -> ids) request collected from the previous wave in one
    fan-out. Child ids are gathered from each declared relation of every fetched entity and
    unioned per target type. Ids already requested for a type are never asked for again, so
    self-referencing types (folders in folders, replies to replies) stop once a wave finds
    nothing new. Any fetch failure propagates and no index is returned.
    """

    def __init__(self, fetcher: PagedFetcher, registry: Mapping[str, TypeDescriptor] = REGISTRY) -> None:
        self.fetcher = fetcher
        self.registry = registry
        self.levels = 0

    def load(self, root_type: str, root_ids: Sequence[Any]) -> TreeIndex:
        if root_type not in self.registry:
            raise KeyError(f"unknown entity type: {root_type}")

        index = TreeIndex()
        requested: Dict[str, Set[str]] = {}
        self.levels = 0
        wave = self._claim({root_type: list(root_ids)}, requested)

        while wave:
            fetched = self.fetcher.fetch_many(wave)
            self.levels += 1
            for entity_type, entities in fetched.items():
                index.add(entity_type, entities)
            log.debug("wave %s indexed", self.levels, extra={"types": sorted(fetched)})
            wave = self._claim(self._children(fetched), requested)

        for entity_type, count in index.counts().items():
            log.info("fetched %s %s", count, entity_type)
        return index

    def _children(self, fetched: Mapping[str, List[dict]]) -> Dict[str, List[Any]]:
        """Child ids per target type, in relation then entity then link order."""
        collected: Dict[str, List[Any]] = {}
        for entity_type, entities in fetched.items():
            for relation in self.registry[entity_type].children:
                bucket = collected.setdefault(relation.target, [])
                for entity in entities:
                    bucket.extend(relation.ids(entity))
        return collected

    def _claim(self, candidates: Mapping[str, List[Any]], requested: Dict[str, Set[str]]) -> Dict[str, List[Any]]:
        """
        De-duplicate by id and drop anything requested in an earlier wave.
        With a testing limit only the first N fresh ids are claimed; the rest stay
        unclaimed so another parent can still reach them in a later wave.
        """
        limit = self.fetcher.testing_limit
        wave: Dict[str, List[Any]] = {}
        for entity_type, ids in candidates.items():
            seen = requested.setdefault(entity_type, set())
            fresh: List[Any] = []
            for i in ids:
                if limit and len(fresh) >= limit:
                    break
                key = entity_key(i)
                if key not in seen:
                    seen.add(key)
                    fresh.append(i)
            if fresh:
                wave[entity_type] = fresh
        return wave
