"""Chat and message persistence, scoped to the owning user."""
import logging
from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import db_models

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New chat"
MAX_TITLE_LENGTH = 50


class ChatNotFound(LookupError):
    """The chat does not exist or belongs to another user."""

    def __init__(self, chat_id: str):
        super().__init__(f"Chat {chat_id} not found")
        self.chat_id = chat_id


def make_title(text: str) -> str:
    """Title derived from a user message, at most MAX_TITLE_LENGTH characters."""
    title = (text or "").strip()[:MAX_TITLE_LENGTH].strip()
    return title or DEFAULT_TITLE


@contextmanager
def _transaction(db: Session, action: str):
    try:
        yield
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Database error while trying to %s", action)
        raise


def _owned_chat_query(db: Session, user_id: str):
    return db.query(db_models.ChatDB).filter(db_models.ChatDB.user_id == user_id)


def _require_chat(db: Session, user_id: str, chat_id: str) -> db_models.ChatDB:
    db_chat = get_chat(db, user_id, chat_id)
    if db_chat is None:
        raise ChatNotFound(chat_id)
    return db_chat


def get_chats(db: Session, user_id: str, limit: int = 100, offset: int = 0) -> List[db_models.ChatDB]:
    return (
        _owned_chat_query(db, user_id)
        .order_by(db_models.ChatDB.updated_at.desc(), db_models.ChatDB.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def get_chat(db: Session, user_id: str, chat_id: str) -> Optional[db_models.ChatDB]:
    return _owned_chat_query(db, user_id).filter(db_models.ChatDB.id == chat_id).first()


def create_chat(db: Session, user_id: str, title: str = DEFAULT_TITLE) -> db_models.ChatDB:
    now = db_models.utcnow()
    db_chat = db_models.ChatDB(user_id=user_id, title=title or DEFAULT_TITLE, created_at=now, updated_at=now)
    with _transaction(db, "create chat"):
        db.add(db_chat)
    db.refresh(db_chat)
    logger.info("Created chat %s for user %s", db_chat.id, user_id)
    return db_chat


def _touch(db_chat: db_models.ChatDB) -> None:
    # updated_at never moves backwards, even if the clock does
    now = db_models.utcnow()
    if db_chat.updated_at is None or now > db_chat.updated_at:
        db_chat.updated_at = now


def update_chat_title(db: Session, user_id: str, chat_id: str, title: str) -> db_models.ChatDB:
    db_chat = _require_chat(db, user_id, chat_id)
    with _transaction(db, f"rename chat {chat_id}"):
        db_chat.title = title or DEFAULT_TITLE
        _touch(db_chat)
    db.refresh(db_chat)
    return db_chat


def delete_chat(db: Session, user_id: str, chat_id: str) -> None:
    db_chat = _require_chat(db, user_id, chat_id)
    with _transaction(db, f"delete chat {chat_id}"):
        db.delete(db_chat)
    logger.info("Deleted chat %s", chat_id)


def add_message(
    db: Session,
    user_id: str,
    chat_id: str,
    content: str,
    sender: str,
    type: Optional[str] = None,
) -> db_models.MessageDB:
    """Append a message and bump the parent chat's updated_at in one commit."""
    if sender not in db_models.SENDERS:
        raise ValueError(f"Invalid sender: {sender!r}")
    if type is not None and type not in db_models.MESSAGE_TYPES:
        raise ValueError(f"Invalid message type: {type!r}")

    db_chat = _require_chat(db, user_id, chat_id)
    last = (
        db.query(db_models.MessageDB)
        .filter(db_models.MessageDB.chat_id == chat_id)
        .order_by(db_models.MessageDB.seq.desc())
        .first()
    )
    now = db_models.utcnow()
    created_at = max(now, last.created_at) if last else now
    next_seq = (last.seq + 1) if last else 0

    db_msg = db_models.MessageDB(
        chat_id=chat_id,
        seq=next_seq,
        content=content,
        sender=sender,
        type=type,
        created_at=created_at,
    )
    with _transaction(db, f"add message to chat {chat_id}"):
        db.add(db_msg)
        _touch(db_chat)
    db.refresh(db_msg)
    return db_msg


def get_messages(db: Session, user_id: str, chat_id: str) -> List[db_models.MessageDB]:
    _require_chat(db, user_id, chat_id)
    return (
        db.query(db_models.MessageDB)
        .filter(db_models.MessageDB.chat_id == chat_id)
        .order_by(db_models.MessageDB.created_at.asc(), db_models.MessageDB.seq.asc())
        .all()
    )


def count_user_messages(db: Session, user_id: str, chat_id: str) -> int:
    _require_chat(db, user_id, chat_id)
    return (
        db.query(func.count(db_models.MessageDB.id))
        .filter(db_models.MessageDB.chat_id == chat_id, db_models.MessageDB.sender == "user")
        .scalar()
    )
