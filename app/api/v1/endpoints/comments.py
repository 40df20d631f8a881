"""
Task comment endpoints, @mention autocomplete and the live comment stream.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder

from app.api.v1.deps import extract_bearer, get_comment_manager, get_current_profile, get_identity
from app.core.exceptions import AuthenticationError, NotFound
from app.core.security import decode_access_token
from app.db.realtime import change_feed
from app.models.profile import Profile
from app.models.task import TaskComment
from app.schemas.common import DeleteResponse
from app.schemas.task import (CommentCreate, CommentRead, CommentUpdate,
                              MentionCandidate, MentionRead)
from app.services.comments import CommentManager, edit_seconds_left
from app.services.identity import IdentityService
from app.services.mentions import (active_mention_query, extract_mentions,
                                   format_mention, render_mentions,
                                   search_mention_candidates)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["comments"])


def _comment_read(comment: TaskComment, viewer: Profile) -> CommentRead:
    return CommentRead(
        id=comment.id,
        task_id=comment.task_id,
        user_id=comment.user_id,
        user_name=comment.user_name,
        comment_text=comment.comment_text,
        rendered_text=render_mentions(comment.comment_text),
        mentions=[
            MentionRead(display_name=m.display_name, profile_id=m.profile_id)
            for m in extract_mentions(comment.comment_text)
        ],
        is_edited=bool(comment.is_edited),
        created_at=comment.created_at,
        can_edit=CommentManager.can_edit(comment, viewer),
        edit_seconds_left=edit_seconds_left(comment, viewer),
        can_delete=CommentManager.can_delete(viewer),
    )


@router.get("/tasks/{task_id}/comments", response_model=list[CommentRead])
async def list_comments(
    task_id: int,
    comments: CommentManager = Depends(get_comment_manager),
    current: Profile = Depends(get_current_profile),
) -> list[CommentRead]:
    """Oldest first."""
    return [_comment_read(c, current) for c in await comments.list_comments(task_id)]


@router.post("/tasks/{task_id}/comments", response_model=CommentRead, status_code=201)
async def post_comment(
    task_id: int,
    body: CommentCreate,
    comments: CommentManager = Depends(get_comment_manager),
    current: Profile = Depends(get_current_profile),
) -> CommentRead:
    comment = await comments.post_comment(task_id, body.comment_text, current)
    return _comment_read(comment, current)


@router.get("/comments/mention-candidates", response_model=list[MentionCandidate])
async def mention_candidates(
    q: Optional[str] = Query(None, description="Prefix typed after '@'"),
    text: Optional[str] = Query(None, description="Draft text; the query is taken at the cursor"),
    cursor: Optional[int] = Query(None, ge=0),
    identity: IdentityService = Depends(get_identity),
    current: Profile = Depends(get_current_profile),
) -> list[MentionCandidate]:
    """Profiles to offer while the user types an ``@`` mention."""
    if text is not None:
        q = active_mention_query(text, cursor)
        if q is None:
            return []
    profiles = search_mention_candidates(await identity.list_profiles(), q, current.id)
    return [
        MentionCandidate(
            id=p.id,
            display_name=p.display_name,
            email=p.email,
            role=p.role,
            token=format_mention(p),
        )
        for p in profiles
    ]


@router.patch("/comments/{comment_id}", response_model=CommentRead)
async def edit_comment(
    comment_id: int,
    body: CommentUpdate,
    comments: CommentManager = Depends(get_comment_manager),
    current: Profile = Depends(get_current_profile),
) -> CommentRead:
    """Authors only, within the edit window."""
    comment = await comments.edit_comment(comment_id, body.comment_text, current)
    return _comment_read(comment, current)


@router.delete("/comments/{comment_id}", response_model=DeleteResponse)
async def delete_comment(
    comment_id: int,
    comments: CommentManager = Depends(get_comment_manager),
    current: Profile = Depends(get_current_profile),
) -> DeleteResponse:
    await comments.delete_comment(comment_id, current)
    return DeleteResponse(success=True, message=f"Comment {comment_id} deleted")


# ── Live stream ─────────────────────────────────────────────────────
async def _websocket_profile(websocket: WebSocket, identity: IdentityService) -> Profile | None:
    """Token from ``?token=`` or the ``access_token`` cookie."""
    token = extract_bearer(
        websocket.query_params.get("token"), websocket.cookies.get("access_token")
    )
    payload = decode_access_token(token) if token else None
    if payload is None or not payload.get("sub"):
        return None
    try:
        await identity.active_account(payload["sub"])
        return await identity.resolve_profile(payload["sub"])
    except (AuthenticationError, NotFound):
        return None


@router.websocket("/tasks/{task_id}/comments/live")
async def comments_live(
    websocket: WebSocket,
    task_id: int,
    identity: IdentityService = Depends(get_identity),
    comments: CommentManager = Depends(get_comment_manager),
) -> None:
    """Push the full comment list on connect and after every change to it."""
    viewer = await _websocket_profile(websocket, identity)
    if viewer is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    async def snapshot() -> None:
        try:
            rows = await comments.list_comments(task_id)
        except NotFound:
            await websocket.send_json({"task_id": task_id, "deleted": True, "comments": []})
            return
        await websocket.send_json(
            jsonable_encoder(
                {"task_id": task_id, "comments": [_comment_read(c, viewer) for c in rows]}
            )
        )

    await websocket.accept()
    with change_feed.subscribe("task_comments", task_id=task_id) as sub:
        await snapshot()

        async def forward() -> None:
            while True:
                await sub.get()
                await snapshot()

        pusher = asyncio.create_task(forward())
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug("Comment stream for task %d closed", task_id)
        finally:
            pusher.cancel()
            with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect):
                await pusher
