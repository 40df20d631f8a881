"""
FastAPI dependencies — database session, data store, managers and auth guards.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationError, NotFound
from app.core.security import decode_access_token
from app.db.session import get_async_session
from app.db.store import DataStore
from app.models.profile import Profile
from app.services.attendance import AttendanceRecorder
from app.services.comments import CommentManager
from app.services.identity import IdentityService
from app.services.notices import NoticePublisher
from app.services.storage import ObjectStorage
from app.services.tasks import TaskManager

# auto_error=False so we can fall back to the HttpOnly cookie when the header is missing
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/sign-in", auto_error=False)


# ── Database session / store ────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_async_session():
        yield session


def get_store(db: AsyncSession = Depends(get_db)) -> DataStore:
    return DataStore(db)


def get_storage() -> ObjectStorage:
    return ObjectStorage()


# ── Managers ────────────────────────────────────────────────────────
def get_identity(store: DataStore = Depends(get_store)) -> IdentityService:
    return IdentityService(store)


def get_task_manager(store: DataStore = Depends(get_store)) -> TaskManager:
    return TaskManager(store)


def get_comment_manager(store: DataStore = Depends(get_store)) -> CommentManager:
    return CommentManager(store)


def get_attendance(store: DataStore = Depends(get_store)) -> AttendanceRecorder:
    return AttendanceRecorder(store)


def get_notice_publisher(
    store: DataStore = Depends(get_store),
    storage: ObjectStorage = Depends(get_storage),
) -> NoticePublisher:
    return NoticePublisher(store, storage)


# ── Auth dependencies ───────────────────────────────────────────────
def extract_bearer(header_token: Optional[str], cookie_token: Optional[str]) -> Optional[str]:
    """Header wins over cookie; the cookie is stored as ``Bearer <token>``."""
    if header_token:
        return header_token
    if cookie_token and cookie_token.startswith("Bearer "):
        return cookie_token.split(" ", 1)[1]
    return cookie_token


async def get_current_profile(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),
    identity: IdentityService = Depends(get_identity),
) -> Profile:
    """Decode the JWT and load the caller's profile.

    The role is read from the store on every request, so an admin's role
    change takes effect on the very next call.
    """
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    final_token = extract_bearer(token, access_token)
    if not final_token:
        raise credentials_exc
    payload = decode_access_token(final_token)
    if payload is None or not payload.get("sub"):
        raise credentials_exc

    try:
        await identity.active_account(payload["sub"])
        return await identity.resolve_profile(payload["sub"])
    except (AuthenticationError, NotFound):
        raise credentials_exc from None

