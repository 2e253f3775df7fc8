#models.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

Entity = Dict[str, Any]

ENTITY_TYPES = (
    "organizations",
    "projects",
    "folders",
    "files",
    "revision_clusters",
    "revisions",
    "previews",
    "feedback_items",
    "users",
)


@dataclass(frozen=True, slots=True)
class AccessToken:
    access_token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None

    @classmethod
    def from_response(cls, payload: Dict[str, Any]) -> "AccessToken":
        return cls(
            access_token=str(payload["access_token"]),
            token_type=str(payload.get("token_type") or "bearer"),
            expires_in=payload.get("expires_in"),
            refresh_token=payload.get("refresh_token"),
        )

    @property
    def authorization_header(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}


@dataclass(frozen=True, slots=True)
class DownloadTask:
    url: str
    destination: Path
    filename: Optional[str] = None  # None -> derive from content-disposition


@dataclass(frozen=True, slots=True)
class ExportConfig:
    max_ids_per_request: int = 400
    testing_limit: int = 0          # 0 = unlimited
    max_concurrent_requests: int = 10
    skip_file_assets: bool = False
    max_parallel_fetches: int = 8
    output_root: Path = field(default_factory=lambda: Path("out"))

    def __post_init__(self):
        if self.max_ids_per_request < 1:
            raise ValueError("max_ids_per_request must be >= 1")
        if self.max_concurrent_requests < 1:
            raise ValueError("max_concurrent_requests must be >= 1")
        if self.testing_limit < 0:
            raise ValueError("testing_limit must be >= 0")
        object.__setattr__(self, "output_root", Path(self.output_root))


def entity_key(value: Any) -> str:
    """Ids arrive as ints in payloads and as strings on the command line; index on str."""
    return str(value)


def link_ids(entity: Entity, name: str) -> Optional[List[Any]]:
    """
    Read a link field. Lists pass through, a bare id becomes [id], null becomes [].
    Returns None when the field is absent so callers can try an alias.
    """
    links = entity.get("links") or {}
    if name not in links:
        return None
    value = links[name]
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [v for v in value if v is not None]
    return [value]


@dataclass(frozen=True)
class Relation:
    name: str
    target: str
    aliases: Tuple[str, ...] = ()

    def ids(self, entity: Entity) -> List[Any]:
        for field_name in (self.name, *self.aliases):
            found = link_ids(entity, field_name)
            if found is not None:
                return found
        return []


class TreeIndex:
    """
    type -> (id -> entity). Filled by the loader, read by the serializer.
    Re-adding an id replaces the earlier payload.
    """

    def __init__(self) -> None:
        self._by_type: Dict[str, Dict[str, Entity]] = {}

    def add(self, entity_type: str, entities: Iterable[Entity]) -> int:
        bucket = self._by_type.setdefault(entity_type, {})
        n = 0
        for e in entities:
            bucket[entity_key(e["id"])] = e
            n += 1
        return n

    def get(self, entity_type: str, entity_id: Any) -> Optional[Entity]:
        return self._by_type.get(entity_type, {}).get(entity_key(entity_id))

    def has(self, entity_type: str, entity_id: Any) -> bool:
        return entity_key(entity_id) in self._by_type.get(entity_type, {})

    def ids(self, entity_type: str) -> List[str]:
        return list(self._by_type.get(entity_type, {}))

    def values(self, entity_type: str) -> List[Entity]:
        return list(self._by_type.get(entity_type, {}).values())

    def types(self) -> List[str]:
        return list(self._by_type)

    def counts(self) -> Dict[str, int]:
        return {t: len(bucket) for t, bucket in self._by_type.items()}

    def __len__(self) -> int:
        return sum(len(b) for b in self._by_type.values())

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_type)
