from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from models.schemas import Credentials, SessionOut, SignUpOut, UserOut
from routers.deps import get_bearer_token
from services import auth

router = APIRouter(prefix="/auth", tags=["auth"])


def _session_out(user, auth_session, token: str) -> SessionOut:
    return SessionOut(
        access_token=token,
        expires_at=auth_session.expires_at,
        user=UserOut.model_validate(user),
    )


def _unauthorized(e: auth.AuthError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=str(e),
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post("/signup", response_model=SignUpOut, status_code=status.HTTP_201_CREATED)
def sign_up(data: Credentials, db: Session = Depends(get_db)):
    try:
        user, auth_session, token = auth.sign_up(db, data.email, data.password)
    except auth.InvalidInput as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except auth.EmailAlreadyRegistered as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return SignUpOut(
        user=UserOut.model_validate(user),
        session=_session_out(user, auth_session, token),
        message="Account created.",
    )


@router.post("/signin", response_model=SessionOut)
def sign_in(data: Credentials, db: Session = Depends(get_db)):
    try:
        user, auth_session, token = auth.sign_in(db, data.email, data.password)
    except auth.InvalidCredentials as e:
        raise _unauthorized(e)
    return _session_out(user, auth_session, token)


@router.post("/signout", status_code=status.HTTP_204_NO_CONTENT)
def sign_out(token: str = Depends(get_bearer_token), db: Session = Depends(get_db)):
    auth.sign_out(db, token)


@router.get("/session", response_model=SessionOut)
def read_session(token: str = Depends(get_bearer_token), db: Session = Depends(get_db)):
    try:
        auth_session = auth.get_session(db, token)
    except auth.InvalidSession as e:
        raise _unauthorized(e)
    return _session_out(auth_session.user, auth_session, token)


@router.post("/refresh", response_model=SessionOut)
def refresh(token: str = Depends(get_bearer_token), db: Session = Depends(get_db)):
    try:
        user, auth_session, new_token = auth.refresh_session(db, token)
    except auth.InvalidSession as e:
        raise _unauthorized(e)
    return _session_out(user, auth_session, new_token)
