from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
import uuid
import datetime
from database import Base

SENDERS = ("user", "agent")
MESSAGE_TYPES = ("thinking", "plan")


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp; SQLite stores DateTime without tzinfo."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
    return uuid.uuid4().hex


class UserDB(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_new_id)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    chats = relationship("ChatDB", back_populates="owner", cascade="all, delete-orphan")
    sessions = relationship("AuthSessionDB", back_populates="user", cascade="all, delete-orphan")


class AuthSessionDB(Base):
    __tablename__ = "auth_sessions"

    # Doubles as the JWT "jti" claim
    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)

    user = relationship("UserDB", back_populates="sessions")


class ChatDB(Base):
    __tablename__ = "chats"

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, default="New chat", nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    owner = relationship("UserDB", back_populates="chats")
    messages = relationship(
        "MessageDB",
        back_populates="chat",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: [MessageDB.created_at, MessageDB.seq],
    )

    __table_args__ = (Index("ix_chats_user_updated", "user_id", "updated_at"),)


class MessageDB(Base):
    __tablename__ = "messages"

    id = Column(String, primary_key=True, default=_new_id)
    chat_id = Column(String, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    seq = Column(Integer, nullable=False, default=0)  # insertion order within a chat
    content = Column(Text, nullable=False)
    sender = Column(String(16), nullable=False)  # user | agent
    type = Column(String(16), nullable=True)  # thinking | plan
    created_at = Column(DateTime, default=utcnow, nullable=False)

    chat = relationship("ChatDB", back_populates="messages")

    __table_args__ = (Index("ix_messages_chat_created", "chat_id", "created_at", "seq"),)
