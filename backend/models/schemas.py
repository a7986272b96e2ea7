import datetime
from pydantic import BaseModel, ConfigDict
from typing import Optional, Literal


class PromptRequest(BaseModel):
    # None when omitted; the handler answers 400
    message: Optional[str] = None


class PromptResponse(BaseModel):
    thinking: str
    plan: str


class ErrorResponse(BaseModel):
    error: str


class Credentials(BaseModel):
    email: str
    password: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str


class SessionOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime.datetime
    user: UserOut


class SignUpOut(BaseModel):
    user: UserOut
    session: Optional[SessionOut] = None
    message: str


class ChatCreate(BaseModel):
    title: str = "New chat"


class ChatRename(BaseModel):
    title: str


class ChatOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    created_at: datetime.datetime
    updated_at: datetime.datetime


class MessageCreate(BaseModel):
    content: str
    sender: Literal["user", "agent"]
    type: Optional[Literal["thinking", "plan"]] = None


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    chat_id: str
    content: str
    sender: Literal["user", "agent"]
    type: Optional[Literal["thinking", "plan"]] = None
    created_at: datetime.datetime
