"""Pydantic schemas for notices, categories and tags."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class NoticeUpdate(BaseModel):
    title: str | None = None
    content: str | None = None
    category_id: int | None = None
    video_url: str | None = None
    is_pinned: bool | None = None


class NoticeRead(BaseModel):
    id: int
    title: str
    content: str
    category_id: int | None
    category_name: str | None = None
    category_color: str | None = None
    category_icon: str | None = None
    author_id: str
    author_name: str | None
    image_url: str | None
    video_url: str | None
    is_pinned: bool
    view_count: int
    published_at: datetime | None
    updated_at: datetime | None
    tag_ids: list[int] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class ViewCount(BaseModel):
    id: int
    view_count: int


class CategoryCreate(BaseModel):
    name: str
    color: str | None = None
    icon: str | None = None


class CategoryRead(BaseModel):
    id: int
    name: str
    color: str | None
    icon: str | None

    model_config = {"from_attributes": True}


class TagCreate(BaseModel):
    name: str


class TagRead(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}
