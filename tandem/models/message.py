"""
Tandem — Message model (per-match, append-only chat log).
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tandem.database import Base
from tandem.utils.clock import utcnow


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("match_id", "sequence", name="uq_message_match_sequence"),
        Index("ix_messages_recipient_unread", "match_id", "recipient_id", "is_read"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    match_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Fernet token"
    )
    kind: Mapped[str] = mapped_column(
        String, nullable=False, default="text", comment="text / image / emoji"
    )
    attachment_ref: Mapped[str | None] = mapped_column(String, nullable=True)
    sequence: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="1-based acceptance order within the match"
    )
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    is_read: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # ── Relationships ──────────────────────────────────────────────
    match: Mapped["Match"] = relationship(
        "Match", back_populates="messages", lazy="raise"
    )

    def __repr__(self) -> str:
        return (
            f"<Message match={self.match_id} #{self.sequence} "
            f"{self.sender_id} -> {self.recipient_id} read={self.is_read}>"
        )
