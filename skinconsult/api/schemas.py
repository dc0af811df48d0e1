from typing import Any

from pydantic import BaseModel, Field


class StartSessionRequestSchema(BaseModel):
    user_name: str = Field(min_length=1, max_length=100)


class ChatMessageSchema(BaseModel):
    text: str
    has_choices: bool = False
    choices: list[str] = Field(default_factory=list)


class StartSessionResponseSchema(BaseModel):
    session_id: str
    first_message: ChatMessageSchema


class SendMessageRequestSchema(BaseModel):
    session_id: str
    text: str = ""
    image: str | None = None
    skin_analysis: dict[str, Any] | None = None


class HistoryMessageSchema(BaseModel):
    role: str
    text: str
    ts: float | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


class HistoryResponseSchema(BaseModel):
    session_id: str
    messages: list[HistoryMessageSchema]


class EndSessionRequestSchema(BaseModel):
    session_id: str


class SessionSnapshotSchema(BaseModel):
    session_id: str
    user_name: str
    email: str
    answers: dict[str, str]
    skin_problems: list[str]
    final_recommendation_sent: bool
    message_count: int
    transcript: list[dict[str, Any]] = Field(default_factory=list)
    started_at: float | None = None
    ended_at: float | None = None
