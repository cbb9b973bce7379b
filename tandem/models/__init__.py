"""
Tandem — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from tandem.models.user import User
from tandem.models.match import Match, Swipe
from tandem.models.message import Message

__all__ = [
    "User",
    "Match",
    "Swipe",
    "Message",
]
