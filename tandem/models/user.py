"""
Tandem — User profile model.

Owned by the profile service; the engine only reads it to resolve
counterparts and to check that a swipe target exists.
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tandem.database import Base
from tandem.utils.clock import utcnow


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    intent: Mapped[str] = mapped_column(
        String, nullable=False, default="dating",
        comment="dating / friendship / networking",
    )
    photos: Mapped[list | None] = mapped_column(
        JSON, nullable=True, comment="Array of photo storage refs"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    is_blocked: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )

    @property
    def primary_photo(self) -> str | None:
        if isinstance(self.photos, list) and self.photos:
            return str(self.photos[0])
        return None

    def __repr__(self) -> str:
        return f"<User {self.display_name!r} id={self.id}>"
