"""Match and chat message model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from pawnder.database import Base
from pawnder.models import user  # noqa: F401

MATCH_ACCEPTED = "Accepted"


class Match(Base):
    """Represents a like between two users; accepted matches can chat and meet."""
    __tablename__ = "matches"

    match_id = Column(Integer, primary_key=True)
    from_user_id = Column(Integer, ForeignKey("users.id"), index=True)
    to_user_id = Column(Integer, ForeignKey("users.id"), index=True)
    status = Column(String)


class ChatMessage(Base):
    """Represents one chat message sent inside a match."""
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True)
    match_id = Column(Integer, ForeignKey("matches.match_id"), index=True)
    from_user_id = Column(Integer, ForeignKey("users.id"))
    content = Column(String)
    created_at = Column(DateTime)
