# campus_bot/analytics.py
from typing import Any, Dict, List, Optional

from .db import primary_pool
from .intents import GENERAL_QUESTION


def record_event(
    chat_id: Optional[str],
    device_id: str,
    role: str,
    intent: Optional[str] = None,
    kind: Optional[str] = None,
) -> None:
    """One row per chat turn; `intent` is what the router picked for it."""
    with primary_pool().connection() as conn:
        conn.execute(
            """
            INSERT INTO message_events (chat_id, device_id, role, intent, kind, created_at)
            VALUES (%s, %s, %s, %s, %s, now())
            """,
            (chat_id, device_id, role, intent, kind),
        )


# ===================================================================
# 🔹 FETCH BASIC NUMBERS (totals, intents, weekly usage)
# ===================================================================
def _fetch_basic_aggregates(device_id: Optional[str]) -> Dict[str, Any]:
    """
    Basic aggregates for analytics:
      - totals: { totalUsers, totalQuestions, totalClarifications }
      - top_intents: [ { intent, count }, ... ]
      - by_day: [ { date: "YYYY-MM-DD", count }, ... ]
    """
    where = ""
    params: List[Any] = []

    if device_id is not None:
        where = " AND device_id = %s"
        params.append(device_id)

    with primary_pool().connection() as conn:
        # ---- Total distinct users (devices) ----
        row = conn.execute(
            "SELECT COUNT(DISTINCT device_id) FROM chats"
        ).fetchone()
        total_users = int(row[0]) if row is not None else 0

        # ---- Total questions (user messages) ----
        row = conn.execute(
            f"""
            SELECT COUNT(*)
            FROM message_events
            WHERE role = 'user'
            {where}
            """,
            params,
        ).fetchone()
        total_questions = int(row[0]) if row is not None else 0

        # ---- Turns where we had to ask the user something back ----
        row = conn.execute(
            f"""
            SELECT COUNT(*)
            FROM message_events
            WHERE role = 'assistant' AND kind = 'clarify'
            {where}
            """,
            params,
        ).fetchone()
        total_clarifications = int(row[0]) if row is not None else 0

        # ---- Usage by day (last 7 days, only user messages) ----
        by_day_rows = conn.execute(
            f"""
            SELECT created_at::date AS d, COUNT(*)
            FROM message_events
            WHERE role = 'user'
              AND created_at >= CURRENT_DATE - INTERVAL '7 days'
              {where}
            GROUP BY created_at::date
            ORDER BY d
            """,
            params,
        ).fetchall()

        by_day = [
            {"date": r[0].isoformat(), "count": int(r[1])} for r in by_day_rows
        ]

        # ---- Top intents (routing decisions are logged on the assistant turn) ----
        intent_rows = conn.execute(
            f"""
            SELECT COALESCE(intent, %s) AS i, COUNT(*)
            FROM message_events
            WHERE role = 'assistant'
            {where}
            GROUP BY i
            ORDER BY COUNT(*) DESC
            """,
            [GENERAL_QUESTION, *params],
        ).fetchall()

    top_intents = [
        {"intent": intent, "count": int(cnt)}
        for intent, cnt in intent_rows
    ]

    return {
        "totals": {
            "totalUsers": total_users,
            "totalQuestions": total_questions,
            "totalClarifications": total_clarifications,
        },
        "top_intents": top_intents,
        "by_day": by_day,
    }


# ===================================================================
# 🔹 PUBLIC ENTRY POINT
# ===================================================================

async def get_analytics(device_id: Optional[str]) -> Dict[str, Any]:
    return _fetch_basic_aggregates(device_id)
