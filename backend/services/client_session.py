"""Client-side view of the auth session.

``SessionManager`` plays the role of the identity SDK on the client: it signs
users in and out, pushes state changes to subscribers, and mirrors the current
access token into persistent client storage (localStorage in the browser).
"""
import datetime
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, MutableMapping, Optional

from sqlalchemy.orm import Session

from models import db_models
from services import auth

logger = logging.getLogger(__name__)

TOKEN_STORAGE_KEY = "startai_token"
THEME_STORAGE_KEY = "startai_theme"

# Tokens closer than this to expiry are renewed before use
REFRESH_MARGIN = datetime.timedelta(minutes=5)


class AuthEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


@dataclass
class ClientSession:
    access_token: str
    user_id: str
    email: str
    expires_at: datetime.datetime


Listener = Callable[[AuthEvent, Optional[ClientSession]], None]


class SessionManager:
    def __init__(self, session_factory: Callable[[], Session], storage: MutableMapping[str, str]):
        self._session_factory = session_factory
        self._storage = storage
        self._listeners: List[Listener] = []
        self.session: Optional[ClientSession] = None

    @property
    def token(self) -> Optional[str]:
        return self.session.access_token if self.session else None

    @property
    def storage(self) -> MutableMapping[str, str]:
        return self._storage

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register for auth state changes; returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: AuthEvent, session: Optional[ClientSession]) -> None:
        self.session = session
        if session is not None:
            self._storage[TOKEN_STORAGE_KEY] = session.access_token
        elif event == AuthEvent.SIGNED_OUT or TOKEN_STORAGE_KEY in self._storage:
            self._storage.pop(TOKEN_STORAGE_KEY, None)
        logger.debug("Auth event %s", event.value)
        for listener in list(self._listeners):
            listener(event, session)

    @staticmethod
    def _to_client(user, auth_session, token: str) -> ClientSession:
        return ClientSession(
            access_token=token,
            user_id=user.id,
            email=user.email,
            expires_at=auth_session.expires_at,
        )

    def restore(self) -> Optional[ClientSession]:
        """Pick up a cached token, dropping it if the server no longer accepts it."""
        token = self._storage.get(TOKEN_STORAGE_KEY)
        session = None
        if token:
            db = self._session_factory()
            try:
                auth_session = auth.get_session(db, token)
                session = self._to_client(auth_session.user, auth_session, token)
            except auth.InvalidSession as e:
                logger.info("Discarding cached session: %s", e)
            finally:
                db.close()
        self._emit(AuthEvent.INITIAL_SESSION, session)
        return session

    def sign_in(self, email: str, password: str) -> ClientSession:
        db = self._session_factory()
        try:
            user, auth_session, token = auth.sign_in(db, email, password)
            session = self._to_client(user, auth_session, token)
        finally:
            db.close()
        self._emit(AuthEvent.SIGNED_IN, session)
        return session

    def sign_up(self, email: str, password: str) -> ClientSession:
        db = self._session_factory()
        try:
            user, auth_session, token = auth.sign_up(db, email, password)
            session = self._to_client(user, auth_session, token)
        finally:
            db.close()
        self._emit(AuthEvent.SIGNED_IN, session)
        return session

    def refresh(self) -> ClientSession:
        if self.session is None:
            raise auth.InvalidSession("Authentication required")
        db = self._session_factory()
        try:
            user, auth_session, token = auth.refresh_session(db, self.session.access_token)
            session = self._to_client(user, auth_session, token)
        finally:
            db.close()
        self._emit(AuthEvent.TOKEN_REFRESHED, session)
        return session

    def sign_out(self) -> None:
        if self.session is not None:
            db = self._session_factory()
            try:
                auth.sign_out(db, self.session.access_token)
            finally:
                db.close()
        self._emit(AuthEvent.SIGNED_OUT, None)

    def expire(self) -> None:
        """Drop a session the server no longer accepts, without calling it."""
        if self.session is None and TOKEN_STORAGE_KEY not in self._storage:
            return
        logger.info("Session is no longer valid; signing out locally")
        self._emit(AuthEvent.SIGNED_OUT, None)

    def current_token(self) -> Optional[str]:
        """Access token for the next request, renewed first if it is about to expire."""
        if self.session is None:
            return None
        if self.session.expires_at - db_models.utcnow() <= REFRESH_MARGIN:
            try:
                self.refresh()
            except auth.InvalidSession as e:
                logger.info("Could not renew session: %s", e)
                self.expire()
                return None
        return self.session.access_token
