# export/feedback.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from models import Entity, Relation, TreeIndex, link_ids
from utils.dates import normalize_iso8601
from utils.fs import append_line

COMMENTS_FILE = "comments.md"
INDENT = "  "

# Some payloads carry a comment's replies under feedback_items instead of replies.
REPLIES = Relation("replies", "feedback_items", aliases=("feedback_items",))

log = logging.getLogger(__name__)


def _first_link(entity: Entity, name: str) -> Optional[object]:
    ids = link_ids(entity, name)
    return ids[0] if ids else None


def _timestamp(raw: Optional[str]) -> str:
    if not raw:
        return ""
    try:
        return normalize_iso8601(raw) or raw
    except ValueError:
        return raw


def format_feedback_line(feedback: Entity, user: Optional[Entity], position: int, depth: int) -> str:
    if user:
        author = f"{user.get('first_name', '')} {user.get('last_name', '')} ({user.get('email', '')})"
    else:
        author = "Unknown user"
    return (
        INDENT * depth + f"{position + 1}. "
        f"**{author}**: "
        f"*{_timestamp(feedback.get('created_at'))}* - "
        f"{feedback.get('message') or ''}\n"
    )


def render_feedback(feedback: Entity, file_path: Path, index: TreeIndex, position: int = 0, depth: int = 0) -> None:
    """
    Append one comment line for `feedback`, then its replies one level deeper, depth first.
    Reply ids missing from the index are skipped.
    """
    user_id = _first_link(feedback, "user")
    user = index.get("users", user_id) if user_id is not None else None
    if user is None:
        log.warning(
            "feedback %s: author %s not loaded", feedback.get("id"), user_id,
            extra={"feedback_id": feedback.get("id"), "user_id": user_id},
        )

    append_line(file_path, format_feedback_line(feedback, user, position, depth))

    for i, reply_id in enumerate(REPLIES.ids(feedback)):
        reply = index.get("feedback_items", reply_id)
        if reply is not None:
            render_feedback(reply, file_path, index, i, depth + 1)


def render_preview_comments(preview: Entity, folder: Path, index: TreeIndex) -> Optional[Path]:
    """Render a preview's top-level feedback threads into folder/comments.md."""
    feedback_ids = link_ids(preview, "feedback_items") or []
    if not feedback_ids:
        return None

    comments_path = folder / COMMENTS_FILE
    for i, feedback_id in enumerate(feedback_ids):
        item = index.get("feedback_items", feedback_id)
        if item is not None:
            render_feedback(item, comments_path, index, i, 0)
    return comments_path
