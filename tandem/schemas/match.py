from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Literal, Optional

from tandem.schemas.message import MessageResponse

class SwipeCreate(BaseModel):
    target_id: UUID
    decision: Literal["like", "dislike"]

class SwipeResponse(BaseModel):
    swipe_id: UUID
    decision: str
    is_mutual_match: bool
    match_id: Optional[UUID] = None

class SwipedTargets(BaseModel):
    target_ids: list[UUID]

class ProfileSummary(BaseModel):
    user_id: UUID
    display_name: str
    age: int
    intent: str
    primary_photo_url: Optional[str] = None

class MatchResponse(BaseModel):
    id: UUID
    user_a_id: UUID
    user_b_id: UUID
    created_at: datetime
    is_active: bool
    deactivated_at: Optional[datetime] = None

class MatchListItem(BaseModel):
    match: MatchResponse
    counterpart: ProfileSummary
    last_message: Optional[MessageResponse] = None
    unread_count: int = 0
    has_messages: bool
