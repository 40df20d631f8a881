"""
Identity & role resolver — accounts, profiles and role administration.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from app.core.exceptions import (AuthenticationError, ConflictError,
                                 PermissionDenied, ValidationError)
from app.core.policy import Action, authorize
from app.core.security import get_password_hash, verify_password
from app.db.store import DataStore
from app.models.profile import ROLE_ADMIN, ROLE_MEMBER, ROLES, Profile
from app.models.user import Account, new_principal_id

logger = logging.getLogger(__name__)

SELF_SERVICE_FIELDS = frozenset({"full_name", "phone", "designation", "present"})


def normalise_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("Invalid email address")
    return email


class IdentityService:
    def __init__(self, store: DataStore) -> None:
        self.store = store

    # ── Accounts ────────────────────────────────────────────────────
    async def sign_up(self, email: str, password: str, full_name: str | None = None) -> Profile:
        """Create an account and its ``member`` profile."""
        email = normalise_email(email)
        if len(password or "") < 6:
            raise ValidationError("Password must be at least 6 characters")
        if await self.store.get("accounts", {"email": email}) is not None:
            raise ConflictError("Email already registered")

        account = await self.store.insert(
            "accounts",
            {
                "id": new_principal_id(),
                "email": email,
                "hashed_password": get_password_hash(password),
            },
        )
        logger.info("Account created for %s", email)
        return await self.ensure_profile(account.id, email, full_name)

    async def sign_in(self, email: str, password: str) -> Account:
        account = await self.store.get("accounts", {"email": (email or "").strip().lower()})
        if account is None or not verify_password(password, account.hashed_password):
            raise AuthenticationError("Incorrect email or password")
        if not account.is_active:
            raise PermissionDenied("User account is inactive")
        return account

    async def active_account(self, principal_id: str) -> Account:
        account = await self.store.get("accounts", {"id": principal_id})
        if account is None or not account.is_active:
            raise AuthenticationError("User not found or inactive")
        return account

    # ── Profiles ────────────────────────────────────────────────────
    async def ensure_profile(
        self,
        principal_id: str,
        email: str,
        full_name: str | None = None,
        role: str = ROLE_MEMBER,
    ) -> Profile:
        """Idempotently create the profile for *principal_id*.

        An existing profile is returned untouched, so a repeated or concurrent
        sign-up can never produce a second profile or reset the role.
        """
        now = datetime.now(timezone.utc)
        return await self.store.upsert(
            "profiles",
            {
                "id": principal_id,
                "email": email,
                "full_name": (full_name or "").strip() or None,
                "role": role,
                "present": False,
                "created_at": now,
                "updated_at": now,
            },
            conflict=("id",),
            update_columns=(),
        )

    async def resolve_profile(self, principal_id: str) -> Profile:
        return await self.store.one("profiles", {"id": principal_id}, "Profile")

    async def list_profiles(self) -> list[Profile]:
        return await self.store.select("profiles", order_by=("full_name", "email"))

    async def update_own_profile(self, principal: Profile, fields: Mapping[str, Any]) -> Profile:
        unknown = sorted(set(fields) - SELF_SERVICE_FIELDS)
        if unknown:
            raise PermissionDenied(f"You are not allowed to change: {', '.join(unknown)}")
        values = dict(fields)
        values["updated_at"] = datetime.now(timezone.utc)
        (profile,) = await self.store.update("profiles", values, {"id": principal.id})
        logger.info("Profile %s updated (%s)", principal.id, ", ".join(sorted(fields)))
        return profile

    async def set_role(self, requester: Profile, user_id: str, role: str) -> Profile:
        authorize(requester, Action.PROFILE_SET_ROLE)
        if role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")
        if user_id == requester.id:
            raise ValidationError("You cannot change your own role")
        await self.resolve_profile(user_id)
        (profile,) = await self.store.update(
            "profiles",
            {"role": role, "updated_at": datetime.now(timezone.utc)},
            {"id": user_id},
        )
        logger.info("Role of %s set to %s by %s", user_id, role, requester.id)
        return profile

    async def delete_profile(self, requester: Profile, user_id: str) -> int:
        """Remove a user together with the tasks they are primary POC of.

        Returns the number of tasks deleted.
        """
        from app.services.tasks import TaskManager

        authorize(requester, Action.PROFILE_DELETE)
        if user_id == requester.id:
            raise ValidationError("You cannot delete your own account")
        await self.resolve_profile(user_id)

        tasks = TaskManager(self.store)
        owned = await self.store.select("tasks", {"primary_poc": user_id})
        async with self.store.transaction():
            for task in owned:
                await tasks.purge(task.id)
            await self.store.delete("task_assignments", {"user_id": user_id})
            await self.store.delete("daily_attendance", {"user_id": user_id})
            await self.store.delete("profiles", {"id": user_id})
            await self.store.delete("accounts", {"id": user_id})
        logger.info("Deleted user %s and %d owned task(s)", user_id, len(owned))
        return len(owned)

    async def seed_admin(self, email: str, password: str) -> Profile:
        """Create the bootstrap admin on first start; no-op afterwards."""
        email = normalise_email(email)
        account = await self.store.get("accounts", {"email": email})
        if account is None:
            account = await self.store.insert(
                "accounts",
                {
                    "id": new_principal_id(),
                    "email": email,
                    "hashed_password": get_password_hash(password),
                },
            )
            logger.info("Default admin created: %s (password: <redacted>)", email)
        return await self.ensure_profile(account.id, email, "System Administrator", ROLE_ADMIN)
