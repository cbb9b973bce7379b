"""
Tandem — Swipes API

Records like/dislike decisions.  A like that completes a mutual pair
reports the resulting match in the response.  The discovery layer reads
back the targets a user has already decided on so it can exclude them.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tandem.api.deps import get_current_user_id
from tandem.database import get_db
from tandem.schemas.match import SwipeCreate, SwipedTargets, SwipeResponse
from tandem.services.swipe_service import SwipeService

router = APIRouter()

# ── Service singletons ────────────────────────────────────────────────────────

_swipe_service: SwipeService | None = None


def _get_swipe_service() -> SwipeService:
    global _swipe_service
    if _swipe_service is None:
        _swipe_service = SwipeService()
    return _swipe_service


# ──────────────────────────────────────────────────────────────────────────────
# POST / — Record a swipe
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/",
    response_model=SwipeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a like or dislike",
)
async def record_swipe(
    payload: SwipeCreate,
    user_id: uuid.UUID | None = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> SwipeResponse:
    """Append a swipe for the current user.

    Fails with 409 if the user already swiped on this target, 422 on a
    self-swipe, 404 if the target does not exist.
    """
    result = await _get_swipe_service().record_swipe(
        actor_id=user_id,
        target_id=payload.target_id,
        decision=payload.decision,
        db_session=db,
    )
    return SwipeResponse(**result)


# ──────────────────────────────────────────────────────────────────────────────
# GET /targets — Users already swiped on
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/targets",
    response_model=SwipedTargets,
    summary="Ids the current user has already liked or disliked",
)
async def list_swiped_targets(
    user_id: uuid.UUID | None = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> SwipedTargets:
    """Anonymous callers get an empty list."""
    targets = await _get_swipe_service().swiped_user_ids(user_id, db)
    return SwipedTargets(target_ids=sorted(targets, key=str))
