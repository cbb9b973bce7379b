"""
Tandem — Conversations API

The single read model presentation layers poll for the chat list.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tandem.api.deps import get_current_user_id
from tandem.database import get_db
from tandem.schemas.conversation import ConversationList
from tandem.services.conversation_service import ConversationService

router = APIRouter()

_conversation_service: ConversationService | None = None


def _get_conversation_service() -> ConversationService:
    global _conversation_service
    if _conversation_service is None:
        _conversation_service = ConversationService()
    return _conversation_service


@router.get(
    "/",
    response_model=ConversationList,
    summary="Conversation list split into active chats and new matches",
)
async def list_conversations(
    user_id: uuid.UUID | None = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await _get_conversation_service().list_conversations(user_id, db)
