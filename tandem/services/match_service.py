"""
Tandem — Match Resolver

Turns reciprocal ``like`` swipes into exactly one Match per unordered user
pair:

  1. Pair lock — both users' rows are locked (``SELECT … FOR UPDATE``)
     in canonical order before the swipe is written, so two reciprocal
     likes on one pair run one after the other and the second always
     sees the first.
  2. Reciprocity check — has the target already liked the actor?
  3. Canonical pair key — ``(low, high)`` by string order of the two ids,
     so evaluation is commutative and both sides compute the same
     storage key.
  4. Check-then-insert — the insert runs inside a SAVEPOINT; a unique
     violation on ``uq_match_pair`` is resolved by re-reading the row
     that won.

A pair that has ever matched keeps its row forever.  Deactivation by a
moderator is a state flag, and a fresh mutual like never resurrects it.
"""

from __future__ import annotations

import uuid
from typing import Iterable

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from tandem.config import get_settings
from tandem.errors import NotFound, Unauthenticated, Unauthorized
from tandem.models.match import Match, Swipe
from tandem.models.user import User
from tandem.utils.clock import as_utc, utcnow

logger = structlog.get_logger("tandem.match_service")

LIKE = "like"
DISLIKE = "dislike"

# Capability the caller must inject to deactivate a match.
MODERATE_MATCHES = "moderate_matches"


def canonical_pair(
    first: uuid.UUID,
    second: uuid.UUID,
) -> tuple[uuid.UUID, uuid.UUID]:
    """Order two user ids deterministically (ascending string form)."""
    if str(first) <= str(second):
        return first, second
    return second, first


class MatchService:
    """Materialises and moderates mutual matches."""

    def __init__(self, max_retries: int | None = None) -> None:
        settings = get_settings()
        self.max_retries: int = max_retries or settings.MATCH_CREATE_MAX_RETRIES

    # ── Public API ────────────────────────────────────────────────────────

    async def evaluate(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Match | None:
        """Create the Match for this pair if both sides have liked each other.

        Called right after ``actor_id`` liked ``target_id``.  Never raises for
        the benign outcomes: one-sided like, already matched, or lost race.

        Returns
        -------
        Match | None
            The active match for the pair, or ``None`` when there is no
            mutual like or the pair's match has been deactivated.
        """
        log = logger.bind(actor=str(actor_id), target=str(target_id))

        if not await self._has_liked(target_id, actor_id, db_session):
            log.debug("match_evaluation_one_sided")
            return None

        user_a_id, user_b_id = canonical_pair(actor_id, target_id)

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(IntegrityError),
                stop=stop_after_attempt(self.max_retries),
                reraise=True,
            ):
                with attempt:
                    return await self._find_or_create(
                        user_a_id,
                        user_b_id,
                        db_session,
                        log.bind(attempt=attempt.retry_state.attempt_number),
                    )
        except IntegrityError:
            log.warning("match_create_retries_exhausted", attempts=self.max_retries)
        return None

    async def find_match(
        self,
        user_a_id: uuid.UUID,
        user_b_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Match | None:
        """Look up the match row for a pair, active or not."""
        low, high = canonical_pair(user_a_id, user_b_id)
        stmt = select(Match).where(
            Match.user_a_id == low,
            Match.user_b_id == high,
        )
        result = await db_session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_match(
        self,
        match_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Match:
        """Return the match or raise ``NotFound``."""
        match = await db_session.get(Match, match_id)
        if match is None:
            logger.warning("match_not_found", match_id=str(match_id))
            raise NotFound(f"Match {match_id} not found.")
        return match

    async def get_active_matches(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> list[Match]:
        """All active matches where the user is either participant."""
        stmt = (
            select(Match)
            .where(
                or_(Match.user_a_id == user_id, Match.user_b_id == user_id),
                Match.is_active.is_(True),
            )
            .order_by(Match.created_at.desc())
        )
        result = await db_session.execute(stmt)
        return list(result.scalars().all())

    async def deactivate(
        self,
        match_id: uuid.UUID,
        actor_id: uuid.UUID | None,
        capabilities: Iterable[str],
        db_session: AsyncSession,
    ) -> Match:
        """Flip a match to inactive (moderation action).

        The row is kept so the pair can never be re-matched.  Requires the
        ``moderate_matches`` capability on an identified caller; repeating
        the call is a no-op.
        """
        if actor_id is None:
            raise Unauthenticated("Not authenticated.")

        log = logger.bind(match_id=str(match_id), actor=str(actor_id))

        if MODERATE_MATCHES not in set(capabilities):
            log.warning("match_deactivate_denied")
            raise Unauthorized("Moderation capability required.")

        match = await self.get_match(match_id, db_session)
        if not match.is_active:
            log.info("match_already_inactive")
            return match

        match.is_active = False
        match.deactivated_at = utcnow()
        await db_session.flush()

        log.info("match_deactivated")
        return match

    async def lock_pair(
        self,
        first_id: uuid.UUID,
        second_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> dict[uuid.UUID, User]:
        """Lock both users' rows for the rest of the transaction.

        Rows are locked one at a time in canonical order, so concurrent
        swipes on the same pair from either side queue behind each other
        instead of deadlocking.  Returns the users that exist.
        """
        locked: dict[uuid.UUID, User] = {}
        for user_id in canonical_pair(first_id, second_id):
            stmt = select(User).where(User.id == user_id).with_for_update()
            user = (await db_session.execute(stmt)).scalar_one_or_none()
            if user is not None:
                locked[user_id] = user
        return locked

    @staticmethod
    def to_view(match: Match) -> dict:
        """Public representation of a match, timestamps in UTC."""
        return {
            "id": match.id,
            "user_a_id": match.user_a_id,
            "user_b_id": match.user_b_id,
            "created_at": as_utc(match.created_at),
            "is_active": match.is_active,
            "deactivated_at": (
                as_utc(match.deactivated_at) if match.deactivated_at else None
            ),
        }

    # ── Private helpers ──────────────────────────────────────────────────

    async def _find_or_create(
        self,
        user_a_id: uuid.UUID,
        user_b_id: uuid.UUID,
        db_session: AsyncSession,
        log: structlog.stdlib.BoundLogger,
    ) -> Match | None:
        existing = await self.find_match(user_a_id, user_b_id, db_session)
        if existing is not None:
            if not existing.is_active:
                log.info(
                    "match_inactive_not_resurrected",
                    match_id=str(existing.id),
                )
                return None
            log.info("match_already_exists", match_id=str(existing.id))
            return existing

        match = Match(
            user_a_id=user_a_id,
            user_b_id=user_b_id,
            is_active=True,
            created_at=utcnow(),
        )
        try:
            async with db_session.begin_nested():
                db_session.add(match)
                await db_session.flush()
        except IntegrityError:
            # Concurrent evaluation from the other side inserted first.
            log.info("match_insert_conflict")
            raise

        log.info("match_created", match_id=str(match.id))
        return match

    async def _has_liked(
        self,
        swiper_id: uuid.UUID,
        target_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> bool:
        stmt = select(Swipe.id).where(
            Swipe.swiper_id == swiper_id,
            Swipe.target_id == target_id,
            Swipe.decision == LIKE,
        )
        result = await db_session.execute(stmt)
        return result.scalar_one_or_none() is not None
