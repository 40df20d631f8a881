"""
Notice publisher — announcements with categories, tags, images and view counts.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from app.core.config import settings
from app.core.exceptions import AppError, ValidationError
from app.core.policy import Action, authorize, ensure_utc
from app.db.store import DataStore
from app.models.notice import Notice, NoticeCategory, NoticeTag
from app.models.profile import Profile
from app.services.storage import ObjectStorage, unique_object_name

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"title", "content", "category_id", "video_url", "is_pinned"})


@dataclass
class ImageUpload:
    filename: str | None
    content_type: str | None
    data: bytes


def sort_notices(notices: Iterable[Notice]) -> list[Notice]:
    """Pinned first, then newest ``published_at``; id breaks remaining ties."""
    return sorted(
        notices,
        key=lambda n: (
            not n.is_pinned,
            -ensure_utc(n.published_at).timestamp(),
            -(n.id or 0),
        ),
    )


def _require_text(value: str | None, label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"Notice {label} is required")
    return value


class NoticePublisher:
    def __init__(self, store: DataStore, storage: ObjectStorage | None = None) -> None:
        self.store = store
        self.storage = storage or ObjectStorage()

    # ── Taxonomy ────────────────────────────────────────────────────
    async def list_categories(self) -> list[NoticeCategory]:
        return await self.store.select("notice_categories", order_by=("name",))

    async def create_category(
        self, requester: Profile, name: str, color: str | None = None, icon: str | None = None
    ) -> NoticeCategory:
        authorize(requester, Action.NOTICE_TAXONOMY)
        return await self.store.insert(
            "notice_categories",
            {"name": _require_text(name, "category name"), "color": color, "icon": icon},
        )

    async def list_tags(self) -> list[NoticeTag]:
        return await self.store.select("notice_tags", order_by=("name",))

    async def create_tag(self, requester: Profile, name: str) -> NoticeTag:
        authorize(requester, Action.NOTICE_TAXONOMY)
        return await self.store.insert("notice_tags", {"name": _require_text(name, "tag name")})

    async def _check_refs(self, category_id: int | None, tag_ids: Sequence[int]) -> None:
        if category_id is not None:
            await self.store.one("notice_categories", {"id": category_id}, "Category")
        if tag_ids:
            found = await self.store.select("notice_tags", {"id": list(tag_ids)})
            if len(found) != len(set(tag_ids)):
                raise ValidationError("Unknown tag id")

    async def _store_image(self, image: ImageUpload) -> str:
        if not (image.content_type or "").startswith("image/"):
            raise ValidationError("Only image uploads are accepted")
        if len(image.data) > settings.MAX_IMAGE_BYTES:
            raise ValidationError(
                f"Image must be less than {settings.MAX_IMAGE_BYTES // (1024 * 1024)}MB"
            )
        path = await self.storage.upload(
            unique_object_name(image.filename, prefix="notices/"), image.data
        )
        return self.storage.get_public_url(path)

    # ── Lifecycle ───────────────────────────────────────────────────
    async def create_notice(
        self,
        author: Profile,
        *,
        title: str,
        content: str,
        category_id: int | None = None,
        video_url: str | None = None,
        is_pinned: bool = False,
        tag_ids: Iterable[int] = (),
        image: ImageUpload | None = None,
    ) -> dict[str, Any]:
        authorize(author, Action.NOTICE_CREATE)
        title = _require_text(title, "title")
        content = _require_text(content, "content")
        tag_ids = list(dict.fromkeys(tag_ids))
        await self._check_refs(category_id, tag_ids)

        image_url = await self._store_image(image) if image is not None else None
        try:
            async with self.store.transaction():
                notice = await self.store.insert(
                    "notices",
                    {
                        "title": title,
                        "content": content,
                        "category_id": category_id,
                        "author_id": author.id,
                        "author_name": author.display_name,
                        "image_url": image_url,
                        "video_url": (video_url or "").strip() or None,
                        "is_pinned": is_pinned,
                        "view_count": 0,
                    },
                )
                notice_id = notice.id
                if tag_ids:
                    await self.store.insert_missing(
                        "notice_tag_assignments",
                        [{"notice_id": notice_id, "tag_id": tag_id} for tag_id in tag_ids],
                        ("notice_id", "tag_id"),
                    )
        except AppError:
            image_path = self.storage.path_for_url(image_url)
            if image_path:
                logger.warning("Notice insert failed, removing orphaned %s", image_path)
                await self.storage.remove(image_path)
            raise
        logger.info("Notice %d published by %s", notice_id, author.id)
        return await self.get_notice(notice_id)

    async def update_notice(
        self, notice_id: int, fields: Mapping[str, Any], requester: Profile
    ) -> dict[str, Any]:
        authorize(requester, Action.NOTICE_UPDATE)
        await self.store.one("notices", {"id": notice_id}, "Notice")
        unknown = sorted(set(fields) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update: {', '.join(unknown)}")
        values = dict(fields)
        for name in ("title", "content"):
            if name in values:
                values[name] = _require_text(values[name], name)
        if values.get("category_id") is not None:
            await self._check_refs(values["category_id"], ())
        if values:
            await self.store.update("notices", values, {"id": notice_id})
            logger.info("Notice %d updated by %s", notice_id, requester.id)
        return await self.get_notice(notice_id)

    async def delete_notice(self, notice_id: int, requester: Profile) -> None:
        authorize(requester, Action.NOTICE_DELETE)
        notice = await self.store.one("notices", {"id": notice_id}, "Notice")
        image_path = self.storage.path_for_url(notice.image_url)
        async with self.store.transaction():
            await self.store.delete("notice_tag_assignments", {"notice_id": notice_id})
            await self.store.delete("notices", {"id": notice_id})
        if image_path:
            await self.storage.remove(image_path)
        logger.info("Notice %d deleted by %s", notice_id, requester.id)

    async def increment_view(self, notice_id: int) -> int:
        """Count one view; repeated opens by the same viewer all count."""
        return await self.store.rpc("increment_notice_views", notice_id_param=notice_id)

    # ── Listing ─────────────────────────────────────────────────────
    async def _decorate(self, notices: Sequence[Notice]) -> list[dict[str, Any]]:
        categories = {c.id: c for c in await self.list_categories()}
        tags = {t.id: t for t in await self.list_tags()}
        tag_ids: dict[int, list[int]] = defaultdict(list)
        if notices:
            links = await self.store.select(
                "notice_tag_assignments",
                {"notice_id": [n.id for n in notices]},
                order_by=("id",),
            )
            for link in links:
                tag_ids[link.notice_id].append(link.tag_id)

        items = []
        for notice in notices:
            category = categories.get(notice.category_id)
            ids = [tid for tid in tag_ids[notice.id] if tid in tags]
            items.append(
                {
                    "id": notice.id,
                    "title": notice.title,
                    "content": notice.content,
                    "category_id": notice.category_id,
                    "category_name": category.name if category else None,
                    "category_color": category.color if category else None,
                    "category_icon": category.icon if category else None,
                    "author_id": notice.author_id,
                    "author_name": notice.author_name,
                    "image_url": notice.image_url,
                    "video_url": notice.video_url,
                    "is_pinned": bool(notice.is_pinned),
                    "view_count": notice.view_count or 0,
                    "published_at": notice.published_at,
                    "updated_at": notice.updated_at,
                    "tag_ids": ids,
                    "tags": [tags[tid].name for tid in ids],
                }
            )
        return items

    async def get_notice(self, notice_id: int) -> dict[str, Any]:
        notice = await self.store.one("notices", {"id": notice_id}, "Notice")
        (item,) = await self._decorate([notice])
        return item

    async def list_notices(
        self, category_id: int | None = None, tag_id: int | None = None
    ) -> list[dict[str, Any]]:
        filters = {"category_id": category_id} if category_id is not None else None
        items = await self._decorate(sort_notices(await self.store.select("notices", filters)))
        if tag_id is not None:
            items = [item for item in items if tag_id in item["tag_ids"]]
        return items
