"""
Team roster & profile endpoints.

- Any authenticated user can read the roster and edit their own profile.
- Role changes and deletions are admin-only.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.v1.deps import get_current_profile, get_identity
from app.models.profile import Profile
from app.schemas.user import ProfileDeleteResponse, ProfileRead, ProfileUpdate, RoleUpdate
from app.services.identity import IdentityService

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("", response_model=list[ProfileRead])
async def list_profiles(
    identity: IdentityService = Depends(get_identity),
    _user: Profile = Depends(get_current_profile),
) -> list[Profile]:
    return await identity.list_profiles()


@router.get("/me", response_model=ProfileRead)
async def read_own_profile(current: Profile = Depends(get_current_profile)) -> Profile:
    return current


@router.put("/me", response_model=ProfileRead)
async def update_own_profile(
    body: ProfileUpdate,
    identity: IdentityService = Depends(get_identity),
    current: Profile = Depends(get_current_profile),
) -> Profile:
    """Update self-service fields (name, phone, designation, presence)."""
    return await identity.update_own_profile(current, body.model_dump(exclude_unset=True))


@router.get("/{user_id}", response_model=ProfileRead)
async def read_profile(
    user_id: str,
    identity: IdentityService = Depends(get_identity),
    _user: Profile = Depends(get_current_profile),
) -> Profile:
    return await identity.resolve_profile(user_id)


@router.put("/{user_id}/role", response_model=ProfileRead)
async def set_role(
    user_id: str,
    body: RoleUpdate,
    identity: IdentityService = Depends(get_identity),
    current: Profile = Depends(get_current_profile),
) -> Profile:
    return await identity.set_role(current, user_id, body.role)


@router.delete("/{user_id}", response_model=ProfileDeleteResponse)
async def delete_profile(
    user_id: str,
    identity: IdentityService = Depends(get_identity),
    current: Profile = Depends(get_current_profile),
) -> ProfileDeleteResponse:
    """Delete a user and every task they are the primary POC of."""
    deleted = await identity.delete_profile(current, user_id)
    return ProfileDeleteResponse(success=True, deleted_tasks=deleted)
