"""
Tandem — Conversation Aggregator

Read-side composition of Match + Message Store + profile lookup.  Nothing
here is stored: last message and unread counts are recomputed from the
message log on every call, with one grouped query each instead of one
query per match.

Bucketing rule for the conversation list:
  - ``with_messages``    — sorted by last-message time, newest first
  - ``without_messages`` — sorted by match creation time, newest first
Active chats always surface ahead of un-messaged matches.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tandem.models.message import Message
from tandem.services.match_service import MatchService
from tandem.services.message_service import MessageService
from tandem.services.profile_lookup import ProfileLookup

logger = structlog.get_logger("tandem.conversation_service")


def _empty_conversations() -> dict:
    return {
        "with_messages": [],
        "without_messages": [],
        "unread_total": 0,
        "unread_conversations": 0,
    }


class ConversationService:
    """Builds match and conversation read models for one user."""

    def __init__(
        self,
        match_service: MatchService | None = None,
        profile_lookup: ProfileLookup | None = None,
    ) -> None:
        self.match_service = match_service or MatchService()
        self.profile_lookup = profile_lookup or ProfileLookup()

    # ── Public API ────────────────────────────────────────────────────────

    async def list_conversations(
        self,
        user_id: uuid.UUID | None,
        db_session: AsyncSession,
    ) -> dict:
        """Return the user's conversations split into two recency buckets.

        Returns
        -------
        dict
            ``with_messages``, ``without_messages`` (lists of views),
            ``unread_total`` (unread messages across all conversations) and
            ``unread_conversations`` (conversations with at least one).
        """
        if user_id is None:
            return _empty_conversations()

        log = logger.bind(user_id=str(user_id))
        views = await self._build_views(user_id, db_session)

        with_messages = [v for v in views if v["has_messages"]]
        without_messages = [v for v in views if not v["has_messages"]]

        with_messages.sort(
            key=lambda v: (
                v["last_message"]["sent_at"],
                v["match"]["created_at"],
            ),
            reverse=True,
        )
        without_messages.sort(
            key=lambda v: v["match"]["created_at"],
            reverse=True,
        )

        unread_total = sum(v["unread_count"] for v in views)
        unread_conversations = sum(1 for v in views if v["unread_count"] > 0)

        log.info(
            "conversations_listed",
            with_messages=len(with_messages),
            without_messages=len(without_messages),
            unread_total=unread_total,
        )
        return {
            "with_messages": with_messages,
            "without_messages": without_messages,
            "unread_total": unread_total,
            "unread_conversations": unread_conversations,
        }

    async def list_matches(
        self,
        user_id: uuid.UUID | None,
        db_session: AsyncSession,
    ) -> list[dict]:
        """Every active match as a view, newest match first."""
        if user_id is None:
            return []

        views = await self._build_views(user_id, db_session)
        views.sort(key=lambda v: v["match"]["created_at"], reverse=True)

        logger.info("matches_listed", user_id=str(user_id), count=len(views))
        return views

    # ── View construction ────────────────────────────────────────────────

    async def _build_views(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> list[dict]:
        matches = await self.match_service.get_active_matches(user_id, db_session)
        if not matches:
            return []

        match_ids = [m.id for m in matches]
        profiles = await self.profile_lookup.get_profiles(
            (m.counterpart(user_id) for m in matches), db_session
        )
        last_messages = await self._last_messages(match_ids, db_session)
        unread = await self._unread_counts(match_ids, user_id, db_session)

        views: list[dict] = []
        for match in matches:
            counterpart = profiles.get(match.counterpart(user_id))
            if counterpart is None:
                # Counterpart profile gone: the conversation cannot be shown.
                logger.debug(
                    "conversation_skipped_missing_profile",
                    match_id=str(match.id),
                )
                continue

            last = last_messages.get(match.id)
            views.append({
                "match": MatchService.to_view(match),
                "counterpart": counterpart,
                "last_message": MessageService.to_view(last) if last else None,
                "unread_count": unread.get(match.id, 0),
                "has_messages": last is not None,
            })
        return views

    async def _last_messages(
        self,
        match_ids: list[uuid.UUID],
        db_session: AsyncSession,
    ) -> dict[uuid.UUID, Message]:
        latest = (
            select(
                Message.match_id.label("match_id"),
                func.max(Message.sequence).label("last_sequence"),
            )
            .where(Message.match_id.in_(match_ids))
            .group_by(Message.match_id)
            .subquery()
        )
        stmt = select(Message).join(
            latest,
            and_(
                Message.match_id == latest.c.match_id,
                Message.sequence == latest.c.last_sequence,
            ),
        )
        result = await db_session.execute(stmt)
        return {m.match_id: m for m in result.scalars().all()}

    async def _unread_counts(
        self,
        match_ids: list[uuid.UUID],
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> dict[uuid.UUID, int]:
        stmt = (
            select(Message.match_id, func.count(Message.id))
            .where(
                Message.match_id.in_(match_ids),
                Message.recipient_id == user_id,
                Message.is_read.is_(False),
            )
            .group_by(Message.match_id)
        )
        result = await db_session.execute(stmt)
        return {match_id: int(count) for match_id, count in result.all()}
