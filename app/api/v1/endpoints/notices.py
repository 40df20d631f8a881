"""
Notice board endpoints.

- Everyone reads notices, categories and tags and records views.
- Publishing, editing, deleting and taxonomy management are admin-only.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from app.api.v1.deps import get_current_profile, get_notice_publisher
from app.models.notice import NoticeCategory, NoticeTag
from app.models.profile import Profile
from app.schemas.common import DeleteResponse
from app.schemas.notice import (CategoryCreate, CategoryRead, NoticeRead,
                                NoticeUpdate, TagCreate, TagRead, ViewCount)
from app.services.notices import ImageUpload, NoticePublisher

router = APIRouter(tags=["notices"])


# ── Taxonomy ────────────────────────────────────────────────────────
@router.get("/notice-categories", response_model=list[CategoryRead])
async def list_categories(
    notices: NoticePublisher = Depends(get_notice_publisher),
    _user: Profile = Depends(get_current_profile),
) -> list[NoticeCategory]:
    return await notices.list_categories()


@router.post("/notice-categories", response_model=CategoryRead, status_code=201)
async def create_category(
    body: CategoryCreate,
    notices: NoticePublisher = Depends(get_notice_publisher),
    current: Profile = Depends(get_current_profile),
) -> NoticeCategory:
    return await notices.create_category(current, body.name, body.color, body.icon)


@router.get("/notice-tags", response_model=list[TagRead])
async def list_tags(
    notices: NoticePublisher = Depends(get_notice_publisher),
    _user: Profile = Depends(get_current_profile),
) -> list[NoticeTag]:
    return await notices.list_tags()


@router.post("/notice-tags", response_model=TagRead, status_code=201)
async def create_tag(
    body: TagCreate,
    notices: NoticePublisher = Depends(get_notice_publisher),
    current: Profile = Depends(get_current_profile),
) -> NoticeTag:
    return await notices.create_tag(current, body.name)


# ── Notices ─────────────────────────────────────────────────────────
@router.get("/notices", response_model=list[NoticeRead])
async def list_notices(
    category_id: Optional[int] = Query(None),
    tag_id: Optional[int] = Query(None),
    notices: NoticePublisher = Depends(get_notice_publisher),
    _user: Profile = Depends(get_current_profile),
) -> list[dict[str, Any]]:
    """Pinned notices first, then newest."""
    return await notices.list_notices(category_id, tag_id)


@router.post("/notices", response_model=NoticeRead, status_code=201)
async def create_notice(
    title: str = Form(...),
    content: str = Form(...),
    category_id: Optional[int] = Form(None),
    video_url: Optional[str] = Form(None),
    is_pinned: bool = Form(False),
    tag_ids: list[int] = Form([]),
    image: Optional[UploadFile] = File(None),
    notices: NoticePublisher = Depends(get_notice_publisher),
    current: Profile = Depends(get_current_profile),
) -> dict[str, Any]:
    """Publish a notice (multipart form, optional image)."""
    upload = None
    if image is not None and image.filename:
        upload = ImageUpload(image.filename, image.content_type, await image.read())
    return await notices.create_notice(
        current,
        title=title,
        content=content,
        category_id=category_id,
        video_url=video_url,
        is_pinned=is_pinned,
        tag_ids=tag_ids,
        image=upload,
    )


@router.get("/notices/{notice_id}", response_model=NoticeRead)
async def get_notice(
    notice_id: int,
    notices: NoticePublisher = Depends(get_notice_publisher),
    _user: Profile = Depends(get_current_profile),
) -> dict[str, Any]:
    return await notices.get_notice(notice_id)


@router.patch("/notices/{notice_id}", response_model=NoticeRead)
async def update_notice(
    notice_id: int,
    body: NoticeUpdate,
    notices: NoticePublisher = Depends(get_notice_publisher),
    current: Profile = Depends(get_current_profile),
) -> dict[str, Any]:
    return await notices.update_notice(notice_id, body.model_dump(exclude_unset=True), current)


@router.delete("/notices/{notice_id}", response_model=DeleteResponse)
async def delete_notice(
    notice_id: int,
    notices: NoticePublisher = Depends(get_notice_publisher),
    current: Profile = Depends(get_current_profile),
) -> DeleteResponse:
    await notices.delete_notice(notice_id, current)
    return DeleteResponse(success=True, message=f"Notice {notice_id} deleted")


@router.post("/notices/{notice_id}/views", response_model=ViewCount)
async def record_view(
    notice_id: int,
    notices: NoticePublisher = Depends(get_notice_publisher),
    _user: Profile = Depends(get_current_profile),
) -> ViewCount:
    """Count one view of the notice."""
    return ViewCount(id=notice_id, view_count=await notices.increment_view(notice_id))
