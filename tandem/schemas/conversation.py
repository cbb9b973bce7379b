from pydantic import BaseModel

from tandem.schemas.match import MatchListItem

class ConversationList(BaseModel):
    with_messages: list[MatchListItem]
    without_messages: list[MatchListItem]
    unread_total: int
    unread_conversations: int
