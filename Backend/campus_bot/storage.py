# campus_bot/storage.py
from datetime import datetime, timezone
from typing import List, Dict, Optional

from psycopg.types.json import Jsonb

from .db import primary_pool
from .slots import ConversationContext


async def append_message(chat_id: str, role: str, content: str) -> None:
    """Append a single message to the messages table."""
    # Kept async to match the callers; the DB call itself is synchronous
    # via the connection pool.
    with primary_pool().connection() as conn:
        conn.execute(
            """INSERT INTO messages (chat_id, role, content, created_at)
            VALUES (%s, %s, %s, now())""",
            (chat_id, role, content),
        )


async def get_chat(chat_id: str) -> List[Dict]:
    """Return the full chat history for a given chat_id.

    A list of dicts with `role`, `content` and an ISO `created_at`.
    """
    with primary_pool().connection() as conn:
        rows = conn.execute(
            """SELECT role, content, created_at
            FROM messages
            WHERE chat_id = %s
            ORDER BY created_at, id""",
            (chat_id,),
        ).fetchall()

    messages: List[Dict] = []
    for role, content, created_at in rows:
        # Normalize timestamp to ISO string in UTC
        if isinstance(created_at, datetime):
            ts = created_at.astimezone(timezone.utc).isoformat()
        else:
            ts = None
        messages.append(
            {
                "role": role,
                "content": content,
                "created_at": ts,
            }
        )
    return messages


async def delete_chat(chat_id: str) -> None:
    """Hard-delete a chat; messages, events and state go with it (ON DELETE CASCADE)."""
    with primary_pool().connection() as conn:
        conn.execute("DELETE FROM chats WHERE chat_id = %s", (chat_id,))


# ---------------- CONVERSATION STATE ----------------


async def load_context(chat_id: str) -> Optional[ConversationContext]:
    with primary_pool().connection() as conn:
        row = conn.execute(
            "SELECT state FROM conversation_state WHERE chat_id = %s",
            (chat_id,),
        ).fetchone()
    if not row or not isinstance(row[0], dict):
        return None
    return ConversationContext.model_validate(row[0])


async def save_context(chat_id: str, ctx: ConversationContext) -> None:
    with primary_pool().connection() as conn:
        conn.execute(
            """
            INSERT INTO conversation_state (chat_id, state, updated_at)
            VALUES (%s, %s, now())
            ON CONFLICT (chat_id)
            DO UPDATE SET state = EXCLUDED.state, updated_at = now()
            """,
            (chat_id, Jsonb(ctx.model_dump())),
        )


async def clear_context(chat_id: str) -> None:
    with primary_pool().connection() as conn:
        conn.execute("DELETE FROM conversation_state WHERE chat_id = %s", (chat_id,))
