"""Tests for the notice board: ordering, taxonomy, images and view counts."""

from datetime import datetime, timezone
from pathlib import Path

import pytest
from httpx import AsyncClient

from app.core.config import settings
from app.core.exceptions import NotFound, PermissionDenied, UpstreamError, ValidationError
from app.db.store import DataStore
from app.models.notice import Notice
from app.services.notices import ImageUpload, NoticePublisher, sort_notices
from app.services.storage import ObjectStorage


@pytest.fixture
def storage(tmp_path: Path) -> ObjectStorage:
    storage = ObjectStorage(tmp_path, "/storage")
    storage.prepare()
    return storage


def test_sort_pinned_first_then_newest():
    def notice(nid, pinned, day):
        return Notice(id=nid, is_pinned=pinned, published_at=datetime(2024, 1, day, tzinfo=timezone.utc))

    ordered = sort_notices(
        [notice(1, False, 1), notice(2, True, 2), notice(3, False, 5), notice(4, True, 1)]
    )
    assert [n.id for n in ordered] == [2, 4, 3, 1]


@pytest.mark.asyncio
async def test_create_with_taxonomy(store: DataStore, storage, admin):
    publisher = NoticePublisher(store, storage)
    category = await publisher.create_category(admin, "HR", "#ff0000", "users")
    tag_a = await publisher.create_tag(admin, "policy")
    tag_b = await publisher.create_tag(admin, "urgent")

    notice = await publisher.create_notice(
        admin,
        title="Holiday calendar",
        content="See attached",
        category_id=category.id,
        tag_ids=[tag_b.id, tag_a.id, tag_b.id],
    )
    assert notice["category_name"] == "HR"
    assert notice["category_color"] == "#ff0000"
    assert notice["tag_ids"] == [tag_b.id, tag_a.id]
    assert notice["tags"] == ["urgent", "policy"]
    assert notice["author_name"] == "Ada Admin"
    assert notice["view_count"] == 0

    assert [n["id"] for n in await publisher.list_notices(tag_id=tag_a.id)] == [notice["id"]]
    assert await publisher.list_notices(category_id=category.id + 1) == []


@pytest.mark.asyncio
async def test_unknown_refs_rejected(store: DataStore, storage, admin):
    publisher = NoticePublisher(store, storage)
    with pytest.raises(NotFound):
        await publisher.create_notice(admin, title="t", content="c", category_id=99)
    with pytest.raises(ValidationError):
        await publisher.create_notice(admin, title="t", content="c", tag_ids=[42])


@pytest.mark.asyncio
async def test_only_admin_publishes(store: DataStore, storage, collaborator):
    publisher = NoticePublisher(store, storage)
    with pytest.raises(PermissionDenied):
        await publisher.create_notice(collaborator, title="t", content="c")
    with pytest.raises(PermissionDenied):
        await publisher.create_tag(collaborator, "x")


@pytest.mark.asyncio
async def test_image_upload_and_delete(store: DataStore, storage, admin):
    publisher = NoticePublisher(store, storage)
    notice = await publisher.create_notice(
        admin,
        title="Team photo",
        content="Offsite",
        image=ImageUpload("photo.PNG", "image/png", b"\x89PNG fake"),
    )
    assert notice["image_url"].startswith("/storage/notices/")
    assert notice["image_url"].endswith(".png")
    stored = storage.path_for_url(notice["image_url"])
    assert (storage.root / stored).read_bytes() == b"\x89PNG fake"

    await publisher.delete_notice(notice["id"], admin)
    assert not (storage.root / stored).exists()
    with pytest.raises(NotFound):
        await publisher.get_notice(notice["id"])


@pytest.mark.asyncio
async def test_failed_insert_removes_uploaded_image(
    store: DataStore, storage, admin, monkeypatch
):
    async def failing_insert(table, values):
        raise UpstreamError(f"Could not insert into '{table}'")

    monkeypatch.setattr(store, "insert", failing_insert)
    with pytest.raises(UpstreamError):
        await NoticePublisher(store, storage).create_notice(
            admin,
            title="Team photo",
            content="Offsite",
            image=ImageUpload("photo.png", "image/png", b"\x89PNG fake"),
        )
    assert not any(p.is_file() for p in storage.root.rglob("*"))


@pytest.mark.asyncio
async def test_image_validation(store: DataStore, storage, admin):
    publisher = NoticePublisher(store, storage)
    with pytest.raises(ValidationError):
        await publisher.create_notice(
            admin, title="t", content="c", image=ImageUpload("a.txt", "text/plain", b"hi")
        )
    with pytest.raises(ValidationError):
        await publisher.create_notice(
            admin,
            title="t",
            content="c",
            image=ImageUpload("big.jpg", "image/jpeg", b"x" * (settings.MAX_IMAGE_BYTES + 1)),
        )


@pytest.mark.asyncio
async def test_view_counter(store: DataStore, storage, admin):
    publisher = NoticePublisher(store, storage)
    notice = await publisher.create_notice(admin, title="t", content="c")
    assert await publisher.increment_view(notice["id"]) == 1
    assert await publisher.increment_view(notice["id"]) == 2
    assert (await publisher.get_notice(notice["id"]))["view_count"] == 2
    with pytest.raises(NotFound):
        await publisher.increment_view(9999)


@pytest.mark.asyncio
async def test_update_notice(store: DataStore, storage, admin):
    publisher = NoticePublisher(store, storage)
    notice = await publisher.create_notice(admin, title="t", content="c")
    updated = await publisher.update_notice(notice["id"], {"is_pinned": True, "title": "T2"}, admin)
    assert updated["is_pinned"] is True
    assert updated["title"] == "T2"
    with pytest.raises(ValidationError):
        await publisher.update_notice(notice["id"], {"author_id": "someone"}, admin)


# ── HTTP ────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_notice_endpoints(async_client: AsyncClient, auth, admin, member):
    resp = await async_client.post(
        "/api/v1/notice-tags", json={"name": "events"}, headers=auth(admin)
    )
    tag_id = resp.json()["id"]

    resp = await async_client.post(
        "/api/v1/notices",
        data={"title": "Picnic", "content": "Friday", "is_pinned": "true", "tag_ids": [str(tag_id)]},
        files={"image": ("picnic.jpg", b"jpegbytes", "image/jpeg")},
        headers=auth(admin),
    )
    assert resp.status_code == 201
    created = resp.json()
    assert created["is_pinned"] is True
    assert created["tags"] == ["events"]
    assert created["image_url"].startswith("/storage/notices/")

    resp = await async_client.post(
        "/api/v1/notices", data={"title": "x", "content": "y"}, headers=auth(member)
    )
    assert resp.status_code == 403

    resp = await async_client.post(f"/api/v1/notices/{created['id']}/views", headers=auth(member))
    assert resp.json() == {"id": created["id"], "view_count": 1}

    resp = await async_client.get("/api/v1/notices", headers=auth(member))
    assert [n["title"] for n in resp.json()] == ["Picnic"]

    resp = await async_client.delete(f"/api/v1/notices/{created['id']}", headers=auth(admin))
    assert resp.status_code == 200
