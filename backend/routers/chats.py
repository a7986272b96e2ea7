import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db
from models.db_models import UserDB
from models.schemas import ChatCreate, ChatRename, ChatOut, MessageCreate, MessageOut
from routers.deps import get_current_user
from services import history

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chats", tags=["chats"])


def _not_found(chat_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Chat {chat_id} not found.")


def _storage_error(action: str) -> HTTPException:
    return HTTPException(status_code=500, detail=f"Failed to {action}.")


@router.get("", response_model=List[ChatOut])
def read_chats(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    user: UserDB = Depends(get_current_user),
):
    """Chats of the current user, most recently active first."""
    try:
        return history.get_chats(db, user.id, limit=limit, offset=skip)
    except SQLAlchemyError:
        raise _storage_error("retrieve chat list")


@router.post("", response_model=ChatOut, status_code=status.HTTP_201_CREATED)
def create_chat(data: ChatCreate, db: Session = Depends(get_db), user: UserDB = Depends(get_current_user)):
    try:
        return history.create_chat(db, user.id, title=data.title)
    except SQLAlchemyError:
        raise _storage_error("create chat")


@router.get("/{chat_id}", response_model=ChatOut)
def read_chat(chat_id: str, db: Session = Depends(get_db), user: UserDB = Depends(get_current_user)):
    db_chat = history.get_chat(db, user.id, chat_id)
    if db_chat is None:
        raise _not_found(chat_id)
    return db_chat


@router.patch("/{chat_id}", response_model=ChatOut)
def rename_chat(
    chat_id: str,
    data: ChatRename,
    db: Session = Depends(get_db),
    user: UserDB = Depends(get_current_user),
):
    try:
        return history.update_chat_title(db, user.id, chat_id, data.title)
    except history.ChatNotFound:
        raise _not_found(chat_id)
    except SQLAlchemyError:
        raise _storage_error("rename chat")


@router.delete("/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_chat(chat_id: str, db: Session = Depends(get_db), user: UserDB = Depends(get_current_user)):
    try:
        history.delete_chat(db, user.id, chat_id)
    except history.ChatNotFound:
        raise _not_found(chat_id)
    except SQLAlchemyError:
        raise _storage_error("delete chat")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{chat_id}/messages", response_model=List[MessageOut])
def read_messages(chat_id: str, db: Session = Depends(get_db), user: UserDB = Depends(get_current_user)):
    try:
        return history.get_messages(db, user.id, chat_id)
    except history.ChatNotFound:
        raise _not_found(chat_id)
    except SQLAlchemyError:
        raise _storage_error("retrieve messages")


@router.post("/{chat_id}/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def add_message(
    chat_id: str,
    data: MessageCreate,
    db: Session = Depends(get_db),
    user: UserDB = Depends(get_current_user),
):
    try:
        return history.add_message(db, user.id, chat_id, data.content, data.sender, data.type)
    except history.ChatNotFound:
        raise _not_found(chat_id)
    except SQLAlchemyError:
        raise _storage_error("add message")
