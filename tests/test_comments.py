"""Tests for task comments: edit window, moderation, mentions and the live stream."""

import asyncio
from datetime import timedelta

import pytest
from fastapi import WebSocketDisconnect
from httpx import AsyncClient

from app.api.v1.endpoints.comments import comments_live
from app.core.exceptions import NotFound, PermissionDenied, ValidationError
from app.core.policy import ensure_utc
from app.core.security import create_access_token
from app.db.realtime import INSERT, Change, change_feed
from app.db.store import DataStore
from app.services.comments import CommentManager, edit_seconds_left
from app.services.identity import IdentityService
from app.services.mentions import format_mention
from app.services.tasks import TaskManager


async def _task(store: DataStore, admin, poc) -> int:
    ctx = await TaskManager(store).create_task(admin, title="T", primary_poc_id=poc.id)
    return ctx.task.id


@pytest.mark.asyncio
async def test_post_and_list_oldest_first(store: DataStore, admin, member):
    task_id = await _task(store, admin, member)
    comments = CommentManager(store)
    first = await comments.post_comment(task_id, "first", member)
    second = await comments.post_comment(task_id, "second", admin)

    listed = await comments.list_comments(task_id)
    assert [c.id for c in listed] == [first.id, second.id]
    assert first.user_name == "Mia Member"
    assert first.is_edited is False


@pytest.mark.asyncio
async def test_blank_comment_rejected(store: DataStore, admin, member):
    task_id = await _task(store, admin, member)
    with pytest.raises(ValidationError):
        await CommentManager(store).post_comment(task_id, "   ", member)


@pytest.mark.asyncio
async def test_comment_on_missing_task(store: DataStore, member):
    with pytest.raises(NotFound):
        await CommentManager(store).post_comment(404, "hello", member)


@pytest.mark.asyncio
async def test_edit_window_boundary(store: DataStore, admin, member):
    task_id = await _task(store, admin, member)
    comments = CommentManager(store)
    comment = await comments.post_comment(task_id, "draft", member)
    posted = ensure_utc(comment.created_at)

    edited = await comments.edit_comment(
        comment.id, "final", member, now=posted + timedelta(minutes=5)
    )
    assert edited.comment_text == "final"
    assert edited.is_edited is True

    with pytest.raises(PermissionDenied):
        await comments.edit_comment(
            comment.id, "too late", member, now=posted + timedelta(minutes=5, seconds=1)
        )


@pytest.mark.asyncio
async def test_only_author_edits_and_only_admin_deletes(store: DataStore, admin, member):
    task_id = await _task(store, admin, member)
    comments = CommentManager(store)
    comment = await comments.post_comment(task_id, "mine", member)

    with pytest.raises(PermissionDenied):
        await comments.edit_comment(comment.id, "theirs", admin)
    with pytest.raises(PermissionDenied):
        await comments.delete_comment(comment.id, member)

    await comments.delete_comment(comment.id, admin)
    assert await comments.list_comments(task_id) == []


@pytest.mark.asyncio
async def test_edit_seconds_left(store: DataStore, admin, member):
    task_id = await _task(store, admin, member)
    comment = await CommentManager(store).post_comment(task_id, "x", member)
    posted = ensure_utc(comment.created_at)

    assert edit_seconds_left(comment, member, posted + timedelta(minutes=1)) == 240
    assert edit_seconds_left(comment, member, posted + timedelta(minutes=9)) == 0
    assert edit_seconds_left(comment, admin, posted) == 0


@pytest.mark.asyncio
async def test_post_publishes_change(store: DataStore, feed, admin, member):
    task_id = await _task(store, admin, member)
    with feed.subscribe("task_comments", task_id=task_id) as sub:
        await CommentManager(store).post_comment(task_id, "ping", member)
        change = await sub.get(timeout=1)
    assert change.op == INSERT
    assert change.row["comment_text"] == "ping"


# ── HTTP ────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_comment_endpoints_render_mentions(
    async_client: AsyncClient, store: DataStore, auth, admin, member
):
    task_id = await _task(store, admin, member)
    text = f"please review {format_mention(admin)}"

    resp = await async_client.post(
        f"/api/v1/tasks/{task_id}/comments", json={"comment_text": text}, headers=auth(member)
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["rendered_text"] == "please review @Ada Admin"
    assert body["mentions"] == [{"display_name": "Ada Admin", "profile_id": admin.id}]
    assert body["can_edit"] is True
    assert body["can_delete"] is False
    assert 0 < body["edit_seconds_left"] <= 300

    resp = await async_client.get(f"/api/v1/tasks/{task_id}/comments", headers=auth(admin))
    (listed,) = resp.json()
    assert listed["can_edit"] is False
    assert listed["can_delete"] is True

    resp = await async_client.patch(
        f"/api/v1/comments/{body['id']}", json={"comment_text": "edited"}, headers=auth(admin)
    )
    assert resp.status_code == 403

    resp = await async_client.delete(f"/api/v1/comments/{body['id']}", headers=auth(admin))
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_mention_candidates(async_client: AsyncClient, auth, admin, member, collaborator):
    resp = await async_client.get(
        "/api/v1/comments/mention-candidates", params={"q": "cole"}, headers=auth(member)
    )
    assert [c["id"] for c in resp.json()] == [collaborator.id]
    assert resp.json()[0]["token"] == f"@[Cole Collaborator]({collaborator.id})"

    resp = await async_client.get(
        "/api/v1/comments/mention-candidates",
        params={"text": "hey @Ada"},
        headers=auth(member),
    )
    assert [c["id"] for c in resp.json()] == [admin.id]

    resp = await async_client.get(
        "/api/v1/comments/mention-candidates",
        params={"text": "hey @Ada and"},
        headers=auth(member),
    )
    assert resp.json() == []


@pytest.mark.asyncio
async def test_http_post_notifies_global_feed(
    async_client: AsyncClient, store: DataStore, auth, admin, member
):
    task_id = await _task(store, admin, member)
    with change_feed.subscribe("task_comments", task_id=task_id) as sub:
        await async_client.post(
            f"/api/v1/tasks/{task_id}/comments", json={"comment_text": "hi"}, headers=auth(member)
        )
        change = await sub.get(timeout=1)
    assert change.row["task_id"] == task_id


class _FailingSocket:
    """Accepts the first snapshot, fails the next send, then disconnects."""

    def __init__(self, token: str, task_id: int):
        self.query_params = {"token": token}
        self.cookies = {}
        self.task_id = task_id
        self.sent = []
        self.broken = asyncio.Event()

    async def accept(self):
        pass

    async def close(self, code: int = 1000):
        self.close_code = code

    async def send_json(self, data):
        if self.sent:
            self.broken.set()
            raise RuntimeError("socket is closed")
        self.sent.append(data)
        change_feed.publish(Change("task_comments", INSERT, {"task_id": self.task_id}))

    async def receive_text(self):
        await self.broken.wait()
        raise WebSocketDisconnect(1001)


@pytest.mark.asyncio
async def test_live_stream_surfaces_push_failure(store: DataStore, admin, member):
    task_id = await _task(store, admin, member)
    socket = _FailingSocket(create_access_token(member.id), task_id)

    with pytest.raises(RuntimeError):
        await comments_live(socket, task_id, IdentityService(store), CommentManager(store))
    assert socket.sent[0]["comments"] == []
    assert change_feed.subscriber_count == 0
