"""
Comment moderation — per-task comments with a short self-edit window.

Authors may edit their own comment for ``COMMENT_EDIT_WINDOW_MINUTES``
after posting; only admins delete.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from app.core.exceptions import ValidationError
from app.core.policy import Action, authorize, comment_edit_deadline, ensure_utc, is_allowed
from app.db.store import DataStore
from app.models.profile import Profile
from app.models.task import TaskComment
from app.services.mentions import extract_mentions

logger = logging.getLogger(__name__)


def _clean_text(text: str) -> str:
    if not (text or "").strip():
        raise ValidationError("Comment text must not be empty")
    return text


def edit_seconds_left(comment: TaskComment, requester: Profile, now: datetime | None = None) -> int:
    if comment.user_id != requester.id:
        return 0
    now = ensure_utc(now or datetime.now(timezone.utc))
    return max(0, int((comment_edit_deadline(comment) - now).total_seconds()))


class CommentManager:
    def __init__(self, store: DataStore) -> None:
        self.store = store

    async def list_comments(self, task_id: int) -> list[TaskComment]:
        await self.store.one("tasks", {"id": task_id}, "Task")
        return await self.store.select(
            "task_comments", {"task_id": task_id}, order_by=("created_at", "id")
        )

    async def post_comment(self, task_id: int, text: str, author: Profile) -> TaskComment:
        authorize(author, Action.COMMENT_CREATE)
        text = _clean_text(text)
        await self.store.one("tasks", {"id": task_id}, "Task")
        comment = await self.store.insert(
            "task_comments",
            {
                "task_id": task_id,
                "user_id": author.id,
                "user_name": author.display_name,
                "comment_text": text,
                "is_edited": False,
                "created_at": datetime.now(timezone.utc),
            },
        )
        mentioned = [m.profile_id for m in extract_mentions(text)]
        logger.info(
            "Comment %d on task %d by %s (mentions: %s)",
            comment.id,
            task_id,
            author.id,
            mentioned or "none",
        )
        return comment

    async def edit_comment(
        self,
        comment_id: int,
        new_text: str,
        requester: Profile,
        now: datetime | None = None,
    ) -> TaskComment:
        comment = await self.store.one("task_comments", {"id": comment_id}, "Comment")
        authorize(requester, Action.COMMENT_EDIT, comment, now=now)
        new_text = _clean_text(new_text)
        (comment,) = await self.store.update(
            "task_comments",
            {"comment_text": new_text, "is_edited": True},
            {"id": comment_id},
        )
        logger.info("Comment %d edited by %s", comment_id, requester.id)
        return comment

    async def delete_comment(self, comment_id: int, requester: Profile) -> None:
        authorize(requester, Action.COMMENT_DELETE)
        await self.store.one("task_comments", {"id": comment_id}, "Comment")
        await self.store.delete("task_comments", {"id": comment_id})
        logger.info("Comment %d deleted by %s", comment_id, requester.id)

    @staticmethod
    def can_edit(comment: TaskComment, requester: Profile, now: datetime | None = None) -> bool:
        return is_allowed(requester, Action.COMMENT_EDIT, comment, now=now)

    @staticmethod
    def can_delete(requester: Profile) -> bool:
        return is_allowed(requester, Action.COMMENT_DELETE)
