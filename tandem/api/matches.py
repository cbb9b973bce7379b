"""
Tandem — Matches & Messages API

Endpoints for listing a user's matches, moderating a match, and the
per-match message log (send, fetch, mark read).
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tandem.api.deps import get_capabilities, get_current_user_id
from tandem.database import get_db
from tandem.schemas.match import MatchListItem, MatchResponse
from tandem.schemas.message import MarkReadResponse, MessageCreate, MessageResponse
from tandem.services.conversation_service import ConversationService
from tandem.services.match_service import MatchService
from tandem.services.message_service import MessageService

router = APIRouter()

# ── Service singletons ────────────────────────────────────────────────────────

_match_service: MatchService | None = None
_message_service: MessageService | None = None
_conversation_service: ConversationService | None = None


def _get_match_service() -> MatchService:
    global _match_service
    if _match_service is None:
        _match_service = MatchService()
    return _match_service


def _get_message_service() -> MessageService:
    global _message_service
    if _message_service is None:
        _message_service = MessageService()
    return _message_service


def _get_conversation_service() -> ConversationService:
    global _conversation_service
    if _conversation_service is None:
        _conversation_service = ConversationService(match_service=_get_match_service())
    return _conversation_service


# ──────────────────────────────────────────────────────────────────────────────
# GET / — List the current user's active matches
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/",
    response_model=list[MatchListItem],
    summary="List active matches for the current user",
)
async def list_matches(
    user_id: uuid.UUID | None = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    """Return every active match, newest first, with the counterpart's
    profile and the last message if any.  Anonymous callers get ``[]``."""
    return await _get_conversation_service().list_matches(user_id, db)


# ──────────────────────────────────────────────────────────────────────────────
# POST /{match_id}/deactivate — Moderation
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{match_id}/deactivate",
    response_model=MatchResponse,
    summary="Deactivate a match (moderation)",
)
async def deactivate_match(
    match_id: uuid.UUID,
    user_id: uuid.UUID | None = Depends(get_current_user_id),
    capabilities: frozenset[str] = Depends(get_capabilities),
    db: AsyncSession = Depends(get_db),
) -> MatchResponse:
    """Flip a match to inactive.  Requires an identified caller holding the
    ``moderate_matches`` capability.  The pair can never match again
    afterwards."""
    match = await _get_match_service().deactivate(match_id, user_id, capabilities, db)
    return MatchResponse(**MatchService.to_view(match))


# ──────────────────────────────────────────────────────────────────────────────
# /{match_id}/messages — Message log
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{match_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message in a match",
)
async def send_message(
    match_id: uuid.UUID,
    payload: MessageCreate,
    user_id: uuid.UUID | None = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await _get_message_service().send_message(
        match_id=match_id,
        sender_id=user_id,
        content=payload.content,
        kind=payload.kind,
        attachment_ref=payload.attachment_ref,
        db_session=db,
    )


@router.get(
    "/{match_id}/messages",
    response_model=list[MessageResponse],
    summary="Fetch recent messages in chronological order",
)
async def get_messages(
    match_id: uuid.UUID,
    limit: int | None = Query(None, ge=1, description="Max messages to return"),
    user_id: uuid.UUID | None = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    """Non-participants receive an empty list rather than an error."""
    return await _get_message_service().get_messages(
        match_id=match_id,
        requester_id=user_id,
        limit=limit,
        db_session=db,
    )


@router.post(
    "/{match_id}/messages/read",
    response_model=MarkReadResponse,
    summary="Mark the current user's incoming messages as read",
)
async def mark_messages_read(
    match_id: uuid.UUID,
    user_id: uuid.UUID | None = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> MarkReadResponse:
    marked = await _get_message_service().mark_read(match_id, user_id, db)
    return MarkReadResponse(match_id=match_id, marked=marked)
