from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Literal, Optional

class MessageCreate(BaseModel):
    content: str = ""
    kind: Literal["text", "image", "emoji"] = "text"
    attachment_ref: Optional[str] = Field(None, description="Storage ref of an uploaded attachment")

class MessageResponse(BaseModel):
    id: UUID
    match_id: UUID
    sender_id: UUID
    recipient_id: UUID
    content: str
    kind: str
    attachment_ref: Optional[str] = None
    attachment_url: Optional[str] = None
    sequence: int
    sent_at: datetime
    is_read: bool

class MarkReadResponse(BaseModel):
    match_id: UUID
    marked: int
