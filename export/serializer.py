# export/serializer.py
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Optional, Set, Tuple

from export.registry import REGISTRY, TypeDescriptor
from logging_setup import get_logger
from models import Entity, TreeIndex, entity_key
from utils.fs import atomic_write, ensure_dir, json_dumps_pretty

if TYPE_CHECKING:  # pragma: no cover
    from export.downloads import DownloadQueue

META_FILE = "meta.json"


class TreeSerializer:
    """
    Replay a loaded TreeIndex onto disk, depth first.

    Layout (folder-creating types only; see export.registry for names):
      <root>/<org name>/meta.json
               └─ <project name>/<folder name>/.../<file slug>/revision-N/preview - P/
    Each node's own folder, meta.json and post-process output are written before any of
    its children are visited. Children come from the node's own link fields in declared
    relation order, then link list order.
    """

    def __init__(
        self,
        index: TreeIndex,
        downloads: Optional["DownloadQueue"] = None,
        *,
        registry: Mapping[str, TypeDescriptor] = REGISTRY,
        org_id: object = "-",
    ) -> None:
        self.index = index
        self.downloads = downloads
        self.registry = registry
        self.org_id = org_id
        self.log = get_logger(entity="serializer", org_id=org_id)
        self.nodes_written = 0
        self.dangling = 0
        self._ancestors: Set[Tuple[str, str]] = set()

    def serialize(self, output_root: Path, root_type: str = "organizations") -> Path:
        output_root = Path(output_root)
        ensure_dir(output_root)
        for node in self.index.values(root_type):
            self.visit(root_type, node, output_root)
        self.log.info(
            "serialized tree",
            extra={"root": str(output_root), "nodes": self.nodes_written, "dangling": self.dangling},
        )
        return output_root

    def visit(self, entity_type: str, node: Entity, current_path: Path) -> Path:
        descriptor = self.registry[entity_type]
        key = (entity_type, entity_key(node.get("id")))
        if key in self._ancestors:
            self.log.warning(
                "skipping cyclic reference to %s %s", entity_type, key[1],
                extra={"type": entity_type, "id": key[1]},
            )
            return current_path

        try:
            path = self._materialize(descriptor, node, current_path)
        except OSError as e:
            self.log.error(
                "could not write %s %s; skipping its subtree: %s", entity_type, key[1], e,
                extra={"type": entity_type, "id": key[1], "error": str(e)},
            )
            return current_path

        if descriptor.post_process is not None:
            try:
                descriptor.post_process(self, node, path)
            except Exception:
                self.log.exception(
                    "post-processing failed for %s %s", entity_type, key[1],
                    extra={"type": entity_type, "id": key[1]},
                )

        self._ancestors.add(key)
        try:
            for relation in descriptor.children:
                for child_id in relation.ids(node):
                    child = self.index.get(relation.target, child_id)
                    if child is None:
                        self.dangling += 1
                        self.log.warning(
                            "no %s loaded for id %s; skipping", relation.target, child_id,
                            extra={"parent_type": entity_type, "parent_id": key[1]},
                        )
                        continue
                    self.visit(relation.target, child, path)
        finally:
            self._ancestors.discard(key)

        return path

    def _materialize(self, descriptor: TypeDescriptor, node: Entity, current_path: Path) -> Path:
        if not descriptor.creates_folder:
            return current_path
        path = current_path / descriptor.folder_name(node)
        ensure_dir(path)
        atomic_write(path / META_FILE, json_dumps_pretty(node))
        self.nodes_written += 1
        return path


def serialize(index: TreeIndex, output_root: Path, downloads: Optional["DownloadQueue"] = None) -> Path:
    return TreeSerializer(index, downloads).serialize(output_root)
