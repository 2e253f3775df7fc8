# export/registry.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Optional, Tuple

from export.feedback import REPLIES, render_preview_comments
from models import DownloadTask, Entity, Relation
from utils.fs import atomic_write, json_dumps_pretty
from utils.strings import safe_segment

if TYPE_CHECKING:  # pragma: no cover
    from export.serializer import TreeSerializer

PostProcess = Callable[["TreeSerializer", Entity, Path], None]
Naming = Callable[[Entity], str]

PREVIEW_FILENAME = "preview.png"
USERS_FOLDER = "users"


@dataclass(frozen=True)
class TypeDescriptor:
    type: str
    endpoint: str
    children: Tuple[Relation, ...] = ()
    creates_folder: bool = False
    display_name: Optional[Naming] = None
    post_process: Optional[PostProcess] = None

    def folder_name(self, entity: Entity) -> str:
        raw = self.display_name(entity) if self.display_name else None
        return safe_segment(raw, fallback=f"{self.type}-{entity.get('id')}")


# --------------------- naming rules ---------------------

def _by_name(entity: Entity) -> str:
    return entity.get("name")


def _by_slug(entity: Entity) -> str:
    return entity.get("slug")


def cluster_name(entity: Entity) -> str:
    return f"cluster-{entity.get('cluster_number')}"


def revision_name(entity: Entity) -> str:
    return f"revision-{entity.get('revision_number')}"


def preview_name(entity: Entity) -> str:
    name = entity.get("name")
    return f"preview - {entity.get('page_number')}" + (f" - {name}" if name else "")


def user_file_name(entity: Entity) -> str:
    return safe_segment(
        f"{entity.get('first_name')}-{entity.get('last_name')}",
        fallback=f"user-{entity.get('id')}",
    ) + ".json"


# --------------------- post-processing hooks ---------------------

def _queue_revision_asset(ser: "TreeSerializer", node: Entity, path: Path) -> None:
    url = node.get("download_url")
    if ser.downloads is None or not url:
        return
    ser.downloads.enqueue(DownloadTask(url=url, destination=path))


def _process_preview(ser: "TreeSerializer", node: Entity, path: Path) -> None:
    render_preview_comments(node, path, ser.index)

    url = node.get("url")
    if ser.downloads is None or not url:
        return
    ser.downloads.enqueue(DownloadTask(url=url, destination=path, filename=PREVIEW_FILENAME))


def _write_user(ser: "TreeSerializer", node: Entity, path: Path) -> None:
    atomic_write(path / USERS_FOLDER / user_file_name(node), json_dumps_pretty(node))


# --------------------- registry ---------------------

REGISTRY: Dict[str, TypeDescriptor] = {
    "organizations": TypeDescriptor(
        type="organizations",
        endpoint="/api/v2/organizations/{ids}",
        children=(Relation("projects", "projects"), Relation("users", "users")),
        creates_folder=True,
        display_name=_by_name,
    ),
    "projects": TypeDescriptor(
        type="projects",
        endpoint="/api/v2/projects/{ids}",
        children=(Relation("folders", "folders"), Relation("files", "files")),
        creates_folder=True,
        display_name=_by_name,
    ),
    "folders": TypeDescriptor(
        type="folders",
        endpoint="/api/v2/folders/{ids}",
        children=(Relation("folders", "folders"), Relation("files", "files")),
        creates_folder=True,
        display_name=_by_name,
    ),
    "files": TypeDescriptor(
        type="files",
        endpoint="/api/v2/files/{ids}",
        children=(Relation("revision_clusters", "revision_clusters"), Relation("revisions", "revisions")),
        creates_folder=True,
        display_name=_by_slug,
    ),
    # Clusters group revisions but don't get a folder; their revisions land in the file's folder.
    "revision_clusters": TypeDescriptor(
        type="revision_clusters",
        endpoint="/api/v2/revision_clusters/{ids}",
        children=(Relation("revisions", "revisions"),),
        display_name=cluster_name,
    ),
    "revisions": TypeDescriptor(
        type="revisions",
        endpoint="/api/v2/revisions/{ids}",
        children=(Relation("previews", "previews"),),
        creates_folder=True,
        display_name=revision_name,
        post_process=_queue_revision_asset,
    ),
    "previews": TypeDescriptor(
        type="previews",
        endpoint="/api/v2/previews/{ids}",
        children=(Relation("feedback_items", "feedback_items"),),
        creates_folder=True,
        display_name=preview_name,
        post_process=_process_preview,
    ),
    "feedback_items": TypeDescriptor(
        type="feedback_items",
        endpoint="/api/v2/feedback_items/{ids}",
        children=(REPLIES,),
    ),
    "users": TypeDescriptor(
        type="users",
        endpoint="/api/v2/users/{ids}",
        post_process=_write_user,
    ),
}
