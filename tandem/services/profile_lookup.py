"""
Tandem — Profile lookup

Read-only adapter over the externally owned ``users`` table.  Used to
denormalise match and conversation views; matching logic never consults it.
"""

from __future__ import annotations

import uuid
from typing import Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tandem.models.user import User
from tandem.utils.storage import resolve_media_url

logger = structlog.get_logger("tandem.profile_lookup")


class ProfileLookup:
    """Batch profile resolution for view building."""

    async def get_profiles(
        self,
        user_ids: Iterable[uuid.UUID],
        db_session: AsyncSession,
    ) -> dict[uuid.UUID, dict]:
        """Return ``{user_id: profile}`` for every id that has a profile.

        Ids without a row are simply absent from the result; callers decide
        whether that drops the view.
        """
        ids = set(user_ids)
        if not ids:
            return {}

        stmt = select(User).where(User.id.in_(ids))
        result = await db_session.execute(stmt)
        users = result.scalars().all()

        profiles = {u.id: self._to_profile(u) for u in users}

        missing = ids - profiles.keys()
        if missing:
            logger.debug(
                "profiles_missing",
                missing_users=[str(m) for m in missing],
            )
        return profiles

    @staticmethod
    def _to_profile(user: User) -> dict:
        return {
            "user_id": user.id,
            "display_name": user.display_name,
            "age": user.age,
            "intent": user.intent,
            "primary_photo_url": resolve_media_url(user.primary_photo),
            "is_active": user.is_active,
            "is_blocked": user.is_blocked,
        }
