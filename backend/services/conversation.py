"""UI-independent chat state machine.

States and the events that move between them::

    NO_CHAT --select/new--> LOADING --> CHAT_LOADED --send--> SENDING --> CHAT_LOADED
    any --persistence failure--> ERROR

The Gradio front end only renders what a ``ChatController`` holds.
"""
import datetime
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from services import auth, history, prompt_chain

logger = logging.getLogger(__name__)

GREETING_TEXT = "What goal would you like to achieve?"
ERROR_TEXT = "Error. Please try again."

SUGGESTIONS = [
    "Help me write a business plan for my startup",
    "Help me reach my personal self-development goals",
    "Help me put together a plan for learning to program",
    "Help me plan and organize my development project",
]

_TYPE_HEADERS = {"thinking": "Analysis:", "plan": "Plan:"}

PERSISTENCE_ERRORS = (history.ChatNotFound, auth.InvalidSession, SQLAlchemyError)


class ChatState(str, Enum):
    NO_CHAT = "no_chat"
    LOADING = "loading"
    CHAT_LOADED = "chat_loaded"
    SENDING = "sending"
    ERROR = "error"


@dataclass
class TranscriptEntry:
    text: str
    sender: str
    type: Optional[str] = None


@dataclass
class ChatSummary:
    id: str
    title: str
    created_at: datetime.datetime
    updated_at: datetime.datetime

    @classmethod
    def from_db(cls, db_chat) -> "ChatSummary":
        return cls(db_chat.id, db_chat.title, db_chat.created_at, db_chat.updated_at)


def format_chat_date(
    value: datetime.datetime,
    today: Optional[datetime.date] = None,
    tz: Optional[datetime.tzinfo] = None,
) -> str:
    """Label a stored (naive UTC) timestamp as Today, Yesterday or an ISO date in the viewer's zone.

    ``tz`` defaults to the local zone of this process.
    """
    local = value.replace(tzinfo=datetime.timezone.utc).astimezone(tz)
    today = today or datetime.datetime.now(local.tzinfo).date()
    day = local.date()
    if day == today:
        return "Today"
    if day == today - datetime.timedelta(days=1):
        return "Yesterday"
    return day.isoformat()


def render_message(entry: TranscriptEntry) -> str:
    header = _TYPE_HEADERS.get(entry.type) if entry.sender == "agent" else None
    return f"**{header}**\n\n{entry.text}" if header else entry.text


def to_chatbot_messages(transcript: List[TranscriptEntry]) -> List[dict]:
    """Transcript in the role/content shape ``gr.Chatbot(type="messages")`` expects."""
    return [
        {"role": "user" if entry.sender == "user" else "assistant", "content": render_message(entry)}
        for entry in transcript
    ]


class ChatController:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        token_provider: Callable[[], Optional[str]],
        planner: Callable[[str], Awaitable[prompt_chain.PlanResult]] = prompt_chain.run_prompt_chain,
        on_session_lost: Optional[Callable[[], None]] = None,
    ):
        self._session_factory = session_factory
        self._token_provider = token_provider
        self._planner = planner
        self._on_session_lost = on_session_lost
        self.reset()

    def reset(self) -> None:
        self.state = ChatState.NO_CHAT
        self.chats: List[ChatSummary] = []
        self.current_chat_id: Optional[str] = None
        self.transcript: List[TranscriptEntry] = []
        self.error: Optional[str] = None
        # text of a send whose user turn could not be saved
        self.draft: Optional[str] = None

    @property
    def is_loading(self) -> bool:
        return self.state == ChatState.SENDING

    @contextmanager
    def _user_db(self):
        """DB session plus the id of the user the current token belongs to."""
        db = self._session_factory()
        try:
            user = auth.resolve_session(db, self._token_provider())
            yield db, user.id
        finally:
            db.close()

    def _fail(self, action: str, exc: Exception) -> None:
        logger.error("Could not %s: %s", action, exc)
        if isinstance(exc, auth.InvalidSession) and self._on_session_lost is not None:
            self._on_session_lost()
        self.state = ChatState.ERROR
        self.error = str(exc) or exc.__class__.__name__

    def _reload_chats(self, db: Session, user_id: str) -> None:
        self.chats = [ChatSummary.from_db(c) for c in history.get_chats(db, user_id)]

    def _load_transcript(self, db: Session, user_id: str, chat_id: str) -> None:
        messages = history.get_messages(db, user_id, chat_id)
        if not messages:
            messages = [history.add_message(db, user_id, chat_id, GREETING_TEXT, "agent")]
        self.transcript = [TranscriptEntry(m.content, m.sender, m.type) for m in messages]

    def load_chats(self) -> List[ChatSummary]:
        self.state = ChatState.LOADING
        self.error = None
        try:
            with self._user_db() as (db, user_id):
                self._reload_chats(db, user_id)
                if self.current_chat_id is None and self.chats:
                    self.current_chat_id = self.chats[0].id
                if self.current_chat_id is not None:
                    self._load_transcript(db, user_id, self.current_chat_id)
        except PERSISTENCE_ERRORS as e:
            self._fail("load chats", e)
            return self.chats
        self.state = ChatState.CHAT_LOADED if self.current_chat_id else ChatState.NO_CHAT
        return self.chats

    def select_chat(self, chat_id: str) -> None:
        self.state = ChatState.LOADING
        self.error = None
        try:
            with self._user_db() as (db, user_id):
                self._load_transcript(db, user_id, chat_id)
        except PERSISTENCE_ERRORS as e:
            self._fail(f"open chat {chat_id}", e)
            return
        self.current_chat_id = chat_id
        self.state = ChatState.CHAT_LOADED

    def start_new_chat(self) -> Optional[str]:
        self.state = ChatState.LOADING
        self.error = None
        try:
            with self._user_db() as (db, user_id):
                db_chat = history.create_chat(db, user_id, history.DEFAULT_TITLE)
                chat_id = db_chat.id
                self._load_transcript(db, user_id, chat_id)
                self._reload_chats(db, user_id)
        except PERSISTENCE_ERRORS as e:
            self._fail("start a new chat", e)
            return None
        self.current_chat_id = chat_id
        self.state = ChatState.CHAT_LOADED
        return chat_id

    def delete_chat(self, chat_id: str) -> bool:
        self.error = None
        try:
            with self._user_db() as (db, user_id):
                history.delete_chat(db, user_id, chat_id)
                self._reload_chats(db, user_id)
        except PERSISTENCE_ERRORS as e:
            self._fail(f"delete chat {chat_id}", e)
            return False

        if self.current_chat_id == chat_id:
            self.current_chat_id = None
            self.transcript = []
            if self.chats:
                self.select_chat(self.chats[0].id)
            else:
                self.state = ChatState.NO_CHAT
        return True

    async def send(self, text: str) -> bool:
        """Persist the user turn, run the prompt chain and persist the replies.

        Returns False when the send was ignored or a persistence step failed.
        """
        if not text or not text.strip() or self.is_loading:
            return False

        self.state = ChatState.SENDING
        self.error = None
        self.draft = None
        try:
            with self._user_db() as (db, user_id):
                if self.current_chat_id is None:
                    db_chat = history.create_chat(db, user_id, history.make_title(text))
                    self.current_chat_id = db_chat.id
                    self.transcript = []
                elif history.count_user_messages(db, user_id, self.current_chat_id) == 0:
                    history.update_chat_title(db, user_id, self.current_chat_id, history.make_title(text))
                history.add_message(db, user_id, self.current_chat_id, text, "user")
                self._reload_chats(db, user_id)
        except PERSISTENCE_ERRORS as e:
            self._fail("save the user message", e)
            self.draft = text
            return False
        self.transcript.append(TranscriptEntry(text, "user"))

        try:
            result = await self._planner(text)
            replies = [
                TranscriptEntry(result.thinking, "agent", "thinking"),
                TranscriptEntry(result.plan, "agent", "plan"),
            ]
        except Exception:
            logger.exception("Prompt chain failed for chat %s", self.current_chat_id)
            replies = [TranscriptEntry(ERROR_TEXT, "agent")]
        self.transcript.extend(replies)

        try:
            with self._user_db() as (db, user_id):
                for reply in replies:
                    history.add_message(db, user_id, self.current_chat_id, reply.text, reply.sender, reply.type)
                self._reload_chats(db, user_id)
        except PERSISTENCE_ERRORS as e:
            self._fail("save the reply", e)
            return False

        self.state = ChatState.CHAT_LOADED
        return True
