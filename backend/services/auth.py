"""Identity service: accounts, password checks and bearer sessions.

Access tokens are HS256 JWTs whose ``jti`` points at a row in
``auth_sessions``; revoking that row (sign-out, refresh) invalidates the
token before its ``exp``.
"""
import datetime
import logging
import re
from typing import Tuple

import bcrypt
import jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import db_models
from settings import settings

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
MIN_PASSWORD_LENGTH = 6
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AuthError(Exception):
    """Base class for identity errors."""


class InvalidInput(AuthError):
    pass


class EmailAlreadyRegistered(AuthError):
    pass


class InvalidCredentials(AuthError):
    pass


class InvalidSession(AuthError):
    pass


def _password_bytes(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _validate(email: str, password: str) -> None:
    if not _EMAIL_RE.match(email):
        raise InvalidInput("A valid email address is required")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def _issue_session(db: Session, user: db_models.UserDB) -> Tuple[db_models.AuthSessionDB, str]:
    now = db_models.utcnow()
    expires_at = now + datetime.timedelta(minutes=settings.get_auth_token_ttl_minutes())
    auth_session = db_models.AuthSessionDB(user_id=user.id, created_at=now, expires_at=expires_at)
    db.add(auth_session)
    db.commit()
    db.refresh(auth_session)

    token = jwt.encode(
        {
            "sub": user.id,
            "email": user.email,
            "jti": auth_session.id,
            "iat": now.replace(tzinfo=datetime.timezone.utc),
            "exp": expires_at.replace(tzinfo=datetime.timezone.utc),
        },
        settings.get_auth_secret(),
        algorithm=JWT_ALGORITHM,
    )
    return auth_session, token


def sign_up(db: Session, email: str, password: str):
    email = normalize_email(email)
    _validate(email, password)

    if db.query(db_models.UserDB).filter(db_models.UserDB.email == email).first():
        raise EmailAlreadyRegistered(f"{email} is already registered")

    user = db_models.UserDB(email=email, password_hash=hash_password(password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise EmailAlreadyRegistered(f"{email} is already registered")
    db.refresh(user)
    logger.info("Registered user %s", user.id)

    auth_session, token = _issue_session(db, user)
    return user, auth_session, token


def sign_in(db: Session, email: str, password: str):
    email = normalize_email(email)
    user = db.query(db_models.UserDB).filter(db_models.UserDB.email == email).first()
    if user is None or not verify_password(password or "", user.password_hash):
        logger.warning("Failed sign-in attempt for %s", email)
        raise InvalidCredentials("Invalid email or password")

    auth_session, token = _issue_session(db, user)
    logger.info("User %s signed in", user.id)
    return user, auth_session, token


def _decode(token: str) -> dict:
    try:
        return jwt.decode(token, settings.get_auth_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise InvalidSession("Session expired. Please sign in again.")
    except jwt.InvalidTokenError as e:
        raise InvalidSession(f"Invalid session token: {e}")


def get_session(db: Session, token: str) -> db_models.AuthSessionDB:
    """Return the live session row for a token or raise InvalidSession."""
    if not token:
        raise InvalidSession("Authentication required")
    claims = _decode(token)
    auth_session = db.get(db_models.AuthSessionDB, claims.get("jti"))
    if auth_session is None or auth_session.user_id != claims.get("sub"):
        raise InvalidSession("Unknown session")
    if auth_session.revoked_at is not None:
        raise InvalidSession("Session has been signed out")
    if auth_session.expires_at <= db_models.utcnow():
        raise InvalidSession("Session expired. Please sign in again.")
    return auth_session


def resolve_session(db: Session, token: str) -> db_models.UserDB:
    return get_session(db, token).user


def sign_out(db: Session, token: str) -> None:
    try:
        auth_session = get_session(db, token)
    except InvalidSession:
        return
    auth_session.revoked_at = db_models.utcnow()
    db.commit()
    logger.info("User %s signed out", auth_session.user_id)


def refresh_session(db: Session, token: str):
    """Swap a live token for a fresh one; the old session is revoked."""
    auth_session = get_session(db, token)
    user = auth_session.user
    auth_session.revoked_at = db_models.utcnow()
    db.commit()
    new_session, new_token = _issue_session(db, user)
    return user, new_session, new_token
