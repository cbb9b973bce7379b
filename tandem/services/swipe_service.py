"""
Tandem — Swipe Ledger

Append-only record of one-directional like/dislike decisions.  Each ordered
(actor, target) pair can be written exactly once; a second attempt is
rejected with ``DuplicateSwipe`` rather than overwriting the first.  The
pair's user rows are locked before anything is read, and likes hand off to
the Match Resolver inside the same transaction.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tandem.errors import DuplicateSwipe, InvalidOperation, NotFound, Unauthenticated
from tandem.models.match import Swipe
from tandem.services.match_service import DISLIKE, LIKE, MatchService
from tandem.utils.clock import utcnow

logger = structlog.get_logger("tandem.swipe_service")

DECISIONS: frozenset[str] = frozenset({LIKE, DISLIKE})


class SwipeService:
    """Records swipes and triggers match evaluation on likes."""

    def __init__(self, match_service: MatchService | None = None) -> None:
        self.match_service = match_service or MatchService()

    async def record_swipe(
        self,
        actor_id: uuid.UUID | None,
        target_id: uuid.UUID,
        decision: str,
        db_session: AsyncSession,
    ) -> dict:
        """Append a swipe and, for likes, resolve a possible match.

        Parameters
        ----------
        actor_id:
            Authenticated user making the decision, or ``None`` when the
            request carries no identity.
        target_id:
            User being swiped on.
        decision:
            ``"like"`` or ``"dislike"``.
        db_session:
            Active SQLAlchemy async session.

        Returns
        -------
        dict
            ``swipe_id``, ``decision``, ``is_mutual_match`` and ``match_id``
            (``None`` unless this swipe completed or confirmed an active
            match).

        Raises
        ------
        Unauthenticated, InvalidOperation, NotFound, DuplicateSwipe
        """
        if actor_id is None:
            raise Unauthenticated("Not authenticated.")

        log = logger.bind(actor=str(actor_id), target=str(target_id))

        if decision not in DECISIONS:
            raise InvalidOperation(
                f"Decision must be one of {sorted(DECISIONS)}, got {decision!r}."
            )
        if actor_id == target_id:
            log.warning("swipe_self_rejected")
            raise InvalidOperation("Cannot swipe on yourself.")

        # Serialise with any concurrent swipe on this pair (either direction);
        # every read below then sees the other side's committed like.
        locked = await self.match_service.lock_pair(actor_id, target_id, db_session)
        if target_id not in locked:
            raise NotFound(f"User {target_id} not found.")

        if await self._find_swipe(actor_id, target_id, db_session) is not None:
            log.info("swipe_duplicate", decision=decision)
            raise DuplicateSwipe("Already swiped on this user.")

        swipe = Swipe(
            swiper_id=actor_id,
            target_id=target_id,
            decision=decision,
            created_at=utcnow(),
        )
        try:
            async with db_session.begin_nested():
                db_session.add(swipe)
                await db_session.flush()
        except IntegrityError:
            # Lost an insert race against an identical concurrent request.
            log.info("swipe_duplicate_race", decision=decision)
            raise DuplicateSwipe("Already swiped on this user.") from None

        swipe_id = swipe.id
        log.info("swipe_recorded", swipe_id=str(swipe_id), decision=decision)

        match = None
        if decision == LIKE:
            match = await self.match_service.evaluate(actor_id, target_id, db_session)

        return {
            "swipe_id": swipe_id,
            "decision": decision,
            "is_mutual_match": match is not None,
            "match_id": match.id if match is not None else None,
        }

    async def swiped_user_ids(
        self,
        actor_id: uuid.UUID | None,
        db_session: AsyncSession,
    ) -> set[uuid.UUID]:
        """Targets the actor has already decided on, for discovery filtering."""
        if actor_id is None:
            return set()
        stmt = select(Swipe.target_id).where(Swipe.swiper_id == actor_id)
        result = await db_session.execute(stmt)
        return set(result.scalars().all())

    async def _find_swipe(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Swipe | None:
        stmt = select(Swipe).where(
            Swipe.swiper_id == actor_id,
            Swipe.target_id == target_id,
        )
        result = await db_session.execute(stmt)
        return result.scalar_one_or_none()
