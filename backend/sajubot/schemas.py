from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ── Kakao i open builder skill payloads ──────────────────────────────

class KakaoUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    type: str | None = None
    properties: dict[str, Any] | None = None


class KakaoUserRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    utterance: str
    user: KakaoUser
    timezone: str | None = None
    lang: str | None = None


class KakaoRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    userRequest: KakaoUserRequest


class SimpleTextBody(BaseModel):
    text: str


class SimpleText(BaseModel):
    simpleText: SimpleTextBody


class QuickReply(BaseModel):
    messageText: str
    action: Literal["message", "block"] = "message"
    label: str


class KakaoTemplate(BaseModel):
    outputs: list[SimpleText]
    quickReplies: list[QuickReply] | None = None


class KakaoResponse(BaseModel):
    version: str = "2.0"
    template: KakaoTemplate


def build_kakao_response(text: str, quick_replies: list[dict] | None = None) -> KakaoResponse:
    return KakaoResponse(
        template=KakaoTemplate(
            outputs=[SimpleText(simpleText=SimpleTextBody(text=text))],
            quickReplies=[QuickReply(**reply) for reply in quick_replies] if quick_replies else None,
        )
    )


# ── History ──────────────────────────────────────────────────────────

class ConversationResponse(BaseModel):
    id: UUID
    message: str
    response: str
    fortune_type: str | None
    created_at: datetime


class ConversationListResponse(BaseModel):
    kakao_user_key: str
    conversations: list[ConversationResponse]
