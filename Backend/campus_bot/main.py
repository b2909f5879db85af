# campus_bot/main.py
from uuid import uuid4, UUID
from datetime import datetime, timezone
from typing import Optional, List

import logging
from dotenv import load_dotenv
from psycopg import OperationalError

from fastapi import (
    FastAPI,
    HTTPException,
    Depends,
    Header,
    Body,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

load_dotenv()
logger = logging.getLogger(__name__)

# -------------------------------------------------------------------
# Local imports
# -------------------------------------------------------------------
from .schemas import (
    ChatCreate,
    ChatSummary,
    ChatPost,
    ChatReply,
    ProxyRequest,
    GeminiRequest,
    PlannerRequest,
    AssistantReply,
    AdminAnalyticsResponse,
)
from .config import settings
from .db import primary_pool, ensure_schema, close_pools
from .storage import (
    append_message,
    get_chat,
    delete_chat,
    load_context,
    save_context,
    clear_context,
)
from .analytics import record_event, get_analytics
from .assistant import answer, fun_fact
from .planner import plan_and_answer
from .llm import generate, LLMError, LLMBusyError

# -------------------------------------------------------------------
# FastAPI app
# -------------------------------------------------------------------
app = FastAPI(title="Campus Assistant Backend")


@app.get("/debug/ping")
def ping():
    return {"status": "alive"}


@app.on_event("startup")
async def on_startup():
    """
    Ensure DB schema exists on startup.
    Do NOT crash the app if this fails.
    """
    try:
        ensure_schema()
    except Exception as e:
        logger.exception(
            "❌ ensure_schema failed on startup, continuing without crash: %s", e
        )


@app.on_event("shutdown")
async def on_shutdown():
    close_pools()


# -------------------------------------------------------------------
# CORS
# -------------------------------------------------------------------
ALLOWED_ORIGINS = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]

if not ALLOWED_ORIGINS:
    ALLOWED_ORIGINS = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=False,  # must be False when using "*"
    allow_methods=["*"],
    allow_headers=["*"],
)

CRITICAL_ERROR = "Sorry, a critical error occurred on the server."
DB_UNAVAILABLE = {
    "error": "db_unavailable",
    "message": "Temporary database issue. Please try again in a moment.",
}


# -------------------------------------------------------------------
# Device ID helper
# -------------------------------------------------------------------
def require_device_id(
    x_device_id: Optional[str] = Header(None, alias="X-Device-Id"),
) -> str:
    """
    Use the real device id when the frontend sends it.
    Fall back to 'anonymous' for preflight / health / misc requests.
    """
    if x_device_id:
        return x_device_id
    return "anonymous"


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------
def _ensure_chat(chat_id: str, device_id: str) -> None:
    """Auto-create the chat row if this UUID is new for the device."""
    with primary_pool().connection() as conn:
        row = conn.execute(
            "SELECT 1 FROM chats WHERE chat_id=%s AND device_id=%s",
            (chat_id, device_id),
        ).fetchone()

        if not row:
            conn.execute(
                """
                INSERT INTO chats (chat_id, device_id, title, created_at, updated_at)
                VALUES (%s, %s, %s, now(), now())
                ON CONFLICT (chat_id) DO NOTHING
                """,
                (chat_id, device_id, "New Conversation"),
            )


def _touch_chat(chat_id: str) -> None:
    with primary_pool().connection() as conn:
        conn.execute(
            "UPDATE chats SET updated_at = now() WHERE chat_id = %s",
            (chat_id,),
        )


def _proxy_body(reply: AssistantReply) -> dict:
    """Shape a reply the way the serverless proxy answered the front end."""
    if reply.kind == "clarify":
        return {
            "isClarification": True,
            "message": reply.message,
            "actions": [a.model_dump(exclude_none=True) for a in reply.actions],
        }
    body = {"message": reply.message}
    if reply.actions:
        body["actions"] = [a.model_dump(exclude_none=True) for a in reply.actions]
    return body


# -------------------------------------------------------------------
# Chats list + history
# -------------------------------------------------------------------
@app.get("/api/chats", response_model=List[ChatSummary])
async def list_chats(
    device_id: str = Depends(require_device_id),
    limit: int = 50,
    offset: int = 0,
):
    """List chats for a given device, newest first."""
    with primary_pool().connection() as conn:
        rows = conn.execute(
            """
            SELECT chat_id, title, created_at, updated_at
            FROM chats
            WHERE device_id=%s
            ORDER BY updated_at DESC
            LIMIT %s OFFSET %s
            """,
            (device_id, limit, offset),
        ).fetchall()

    return [
        ChatSummary(
            chat_id=r[0],
            title=r[1],
            created_at=r[2].isoformat(),
            updated_at=r[3].isoformat(),
        )
        for r in rows
    ]


@app.get("/api/chats/{chat_id}")
async def get_chat_messages(
    chat_id: UUID,
    device_id: str = Depends(require_device_id),
):
    """
    Return messages for a chat.
    Ensure the chat row exists & belongs to this device.
    """
    try:
        _ensure_chat(str(chat_id), device_id)
    except OperationalError as e:
        logger.exception("Database connection error in get_chat_messages: %s", e)
        raise HTTPException(
            500,
            "Temporary database connection issue. Please try again.",
        )

    return JSONResponse(await get_chat(str(chat_id)))


@app.post("/api/chats", response_model=ChatSummary)
async def create_chat(
    body: ChatCreate,
    device_id: str = Depends(require_device_id),
):
    """Create a new empty chat record and return its summary."""
    chat_id = uuid4()
    now = datetime.now(timezone.utc)

    with primary_pool().connection() as conn:
        conn.execute(
            """
            INSERT INTO chats (chat_id, device_id, title, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s)
            """,
            (chat_id, device_id, body.title or "New Conversation", now, now),
        )

    return ChatSummary(
        chat_id=chat_id,
        title=body.title or "New Conversation",
        created_at=now.isoformat(),
        updated_at=now.isoformat(),
    )


@app.delete("/api/chats/{chat_id}")
async def delete_chat_api(
    chat_id: UUID,
    device_id: str = Depends(require_device_id),
):
    """Delete a chat, its messages and its conversation state."""
    with primary_pool().connection() as conn:
        row = conn.execute(
            "SELECT 1 FROM chats WHERE chat_id=%s AND device_id=%s",
            (chat_id, device_id),
        ).fetchone()

        if not row:
            raise HTTPException(404, "Chat not found or does not belong to this device")

    await delete_chat(str(chat_id))
    return {"ok": True}


# -------------------------------------------------------------------
# Chat turn (intent routing + slot filling, state kept per chat)
# -------------------------------------------------------------------
@app.post("/api/chat", response_model=ChatReply)
async def chat_api(
    body: ChatPost,
    device_id: str = Depends(require_device_id),
):
    chat_id = str(body.chat_id)
    user_msg = (body.message or "").strip()
    if not user_msg and not body.selected_entry:
        raise HTTPException(400, "Empty message")

    # 1) Ensure chat exists, load pending state, store the user turn
    try:
        _ensure_chat(chat_id, device_id)
        ctx = await load_context(chat_id)
        if not user_msg:
            # a bare button press must name one of the offered students
            selected = ctx.candidate(body.selected_entry) if ctx else None
            if selected is None:
                raise HTTPException(400, "Empty message")
            user_msg = str(selected.get("name") or body.selected_entry)
        await append_message(chat_id, "user", user_msg)
        record_event(chat_id, device_id, "user")
    except OperationalError as e:
        logger.error("DB error in chat_api (before routing): %s", e)
        return JSONResponse(status_code=503, content=DB_UNAVAILABLE)

    # 2) Route + answer
    try:
        reply, ctx = await answer(
            user_msg,
            mode=body.mode,
            reply_to=body.reply_to.text if body.reply_to else None,
            ctx=ctx,
            selected_entry=body.selected_entry,
        )
    except OperationalError as e:
        logger.error("DB error while fetching documents: %s", e)
        return JSONResponse(status_code=503, content=DB_UNAVAILABLE)

    # 3) Persist state + assistant turn
    try:
        if ctx.awaiting_input or ctx.candidates:
            await save_context(chat_id, ctx)
        else:
            await clear_context(chat_id)
        await append_message(chat_id, "assistant", reply.message)
        record_event(chat_id, device_id, "assistant", intent=reply.intent, kind=reply.kind)
        _touch_chat(chat_id)
    except OperationalError as e:
        logger.error("DB error saving assistant message/state: %s", e)
        # Continue anyway; the user still gets the answer

    return ChatReply(
        chat_id=UUID(chat_id),
        reply=reply.message,
        kind=reply.kind,
        actions=reply.actions,
        intent=reply.intent,
    )


# -------------------------------------------------------------------
# Stateless proxy (same contract as the serverless function)
# -------------------------------------------------------------------
@app.post("/api/proxy")
async def proxy_api(body: ProxyRequest):
    query = (body.query or "").strip()
    if not query:
        raise HTTPException(400, "Empty message")

    try:
        reply, _ctx = await answer(
            query,
            mode=body.mode,
            reply_to=body.replyContext.text if body.replyContext else None,
        )
    except Exception as e:
        logger.exception("Proxy error: %s", e)
        return JSONResponse(status_code=500, content={"error": CRITICAL_ERROR})

    return _proxy_body(reply)


# -------------------------------------------------------------------
# Collection planner (history in the request, nothing stored)
# -------------------------------------------------------------------
@app.post("/api")
async def planner_api(body: PlannerRequest):
    query = (body.userQuery or "").strip()
    if not query:
        raise HTTPException(400, "Empty message")

    try:
        text = await plan_and_answer(
            query, [turn.model_dump() for turn in body.conversationHistory]
        )
    except Exception as e:
        logger.exception("Planner error: %s", e)
        return JSONResponse(status_code=500, content={"error": CRITICAL_ERROR})

    return {"response": text}


# -------------------------------------------------------------------
# Model passthrough
# -------------------------------------------------------------------
@app.post("/api/gemini")
async def gemini_api(body: GeminiRequest):
    """
    Forward a raw prompt to the model and answer in Gemini's
    generateContent shape: candidates[0].content.parts[0].text
    """
    if not settings.gemini_api_key:
        return PlainTextResponse("Server configuration error: Missing API Key.", status_code=500)

    try:
        text = await generate(body.prompt, json_mode=body.isJson)
    except LLMBusyError:
        return JSONResponse(status_code=429, content={"error": "The AI service is currently busy."})
    except LLMError as e:
        logger.error("Passthrough call failed: %s", e)
        return JSONResponse(status_code=502, content={"error": "An internal server error occurred."})

    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


@app.post("/api/fun-fact")
async def fun_fact_api():
    reply = await fun_fact()
    return _proxy_body(reply)


# -------------------------------------------------------------------
# Admin verify
# -------------------------------------------------------------------
@app.post("/api/admin/verify")
async def verify_admin(payload: dict = Body(None)):
    """
    Verify the admin dashboard code.

    Frontend sends: { "token": "<code>" } (or "code"/"adminCode"/"password")
    It expects: { "valid": true/false }
    """
    if not isinstance(payload, dict):
        return {"valid": False}

    code = (
        payload.get("code")
        or payload.get("adminCode")
        or payload.get("token")
        or payload.get("password")
    )

    if not code or not settings.admin_dash_token:
        return {"valid": False}

    return {"valid": code == settings.admin_dash_token}


# -------------------------------------------------------------------
# Analytics
# -------------------------------------------------------------------
@app.get("/api/analytics", response_model=AdminAnalyticsResponse)
async def analytics_api(
    device_id: Optional[str] = Depends(require_device_id),
    admin_token: Optional[str] = Header(None, alias="X-Admin-Key"),
):
    """
    If X-Admin-Key == ADMIN_DASH_TOKEN → return system-wide analytics.
    Otherwise → return analytics scoped to this device_id.
    """
    if settings.admin_dash_token and admin_token == settings.admin_dash_token:
        device_filter = None
    else:
        device_filter = device_id

    try:
        return await get_analytics(device_filter)
    except Exception as e:
        logger.exception("analytics_api failed: %s", e)
        # Safe fallback shape that matches AdminAnalyticsResponse
        return {
            "totals": {
                "totalUsers": 0,
                "totalQuestions": 0,
                "totalClarifications": 0,
            },
            "top_intents": [],
            "by_day": [],
        }
