# campus_bot/schemas.py
from pydantic import BaseModel, Field
from typing import Any, Optional, List, Dict, Literal, Union
from uuid import UUID

Mode = Literal["general", "student", "food"]
ReplyKind = Literal["message", "clarify", "command"]


class ChatCreate(BaseModel):
    title: Optional[str] = None

class ChatSummary(BaseModel):
    chat_id: UUID
    title: str
    created_at: str
    updated_at: str

class ReplyTo(BaseModel):
    id: Optional[Union[str, int]] = None  # numeric timestamps from the client
    text: str

class ChatPost(BaseModel):
    chat_id: UUID
    message: str
    mode: Mode = "general"
    reply_to: Optional[ReplyTo] = None
    selected_entry: Optional[str] = None

class Action(BaseModel):
    action: str  # send_query | select_student | open_url | request_credentials
    label: str
    query: Optional[str] = None
    entry: Optional[str] = None
    url: Optional[str] = None
    service: Optional[str] = None

class ModelReply(BaseModel):
    kind: ReplyKind = "message"
    message: str
    actions: List[Action] = Field(default_factory=list)
    candidates: List[Dict[str, Any]] = Field(default_factory=list)

class AssistantReply(BaseModel):
    kind: ReplyKind = "message"
    message: str
    actions: List[Action] = Field(default_factory=list)
    intent: Optional[str] = None

class ChatReply(BaseModel):
    chat_id: UUID
    reply: str
    kind: ReplyKind = "message"
    actions: List[Action] = []
    intent: Optional[str] = None

# Stateless contract spoken by the static front end
class ProxyRequest(BaseModel):
    query: str
    mode: Mode = "general"
    replyContext: Optional[ReplyTo] = None

class GeminiRequest(BaseModel):
    prompt: str
    isJson: bool = False

class IntentCount(BaseModel):
    intent: str
    count: int


class DayCount(BaseModel):
    date: str
    count: int


class AdminAnalyticsResponse(BaseModel):
    totals: Dict[str, int]
    top_intents: List[IntentCount]
    by_day: List[DayCount]


# Collection planner contract: POST /api
class HistoryTurn(BaseModel):
    role: str
    text: str = ""

class PlannerRequest(BaseModel):
    userQuery: str
    conversationHistory: List[HistoryTurn] = Field(default_factory=list)
