# campus_bot/slots.py
"""
Multi-turn slot filling.

Some intents cannot run until the user has told us more (a student lookup
needs the entry year, because directories are split per year). When a field
is missing we remember what we were doing in a ConversationContext, ask the
user, and on the next turn treat their reply as the value of that field.

A reply that does not fill the field gets the question once more. After that,
or as soon as the user switches mode, the pending field is dropped and the
reply is routed like any new query.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .intents import IntentResult, FIND_PERSON, FIND_CLUB_MEMBERS, extract_year

logger = logging.getLogger(__name__)

REQUIRED_SLOTS: Dict[str, List[str]] = {
    FIND_PERSON: ["year"],
    FIND_CLUB_MEMBERS: ["year"],
}

SLOT_QUESTIONS: Dict[str, str] = {
    "year": "Which entry year are you looking for? e.g., 2024, 2025.",
}

MAX_REASKS = 1


class ConversationContext(BaseModel):
    current_intent: Optional[str] = None
    pending_field: Optional[str] = None
    collected: Dict[str, Any] = Field(default_factory=dict)
    # UI mode the question was asked in, and how often it was repeated
    mode: Optional[str] = None
    reasks: int = 0
    # full student records behind the last CLARIFY answer
    candidates: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def awaiting_input(self) -> bool:
        return bool(self.current_intent and self.pending_field)

    def candidate(self, entry: Optional[str]) -> Optional[Dict[str, Any]]:
        if not entry:
            return None
        for c in self.candidates:
            if str(c.get("entryNumber", "")) == entry:
                return c
        return None


def recent_years(count: int = 3, today: Optional[date] = None) -> List[str]:
    today = today or date.today()
    return [str(today.year - i) for i in range(count)]


def rewrite_query(ctx: ConversationContext, query: str) -> str:
    data = ctx.collected
    if ctx.current_intent == FIND_PERSON:
        return f"Find {data.get('name')}, {data.get('year')}"
    if ctx.current_intent == FIND_CLUB_MEMBERS:
        return f"Members of {data.get('club_name')}, {data.get('year')}"
    return query


def resume(
    ctx: Optional[ConversationContext],
    query: str,
    mode: Optional[str] = None,
) -> Tuple[ConversationContext, str]:
    """
    Feed the user's reply into a pending field.

    Returns the updated context and the query to route. Without a pending
    field the context is reset (clarify candidates survive one turn so a
    button press can still be resolved).
    """
    if ctx is None or not ctx.awaiting_input:
        candidates = ctx.candidates if ctx else []
        return ConversationContext(candidates=candidates), query

    field = ctx.pending_field
    value: Optional[str] = query.strip()
    if field == "year":
        value = extract_year(query)
    if not value:
        switched = bool(mode and ctx.mode and mode != ctx.mode)
        if switched or ctx.reasks >= MAX_REASKS:
            logger.info("Dropping pending %s for %s", field, ctx.current_intent)
            return ConversationContext(), query
        ctx.reasks += 1
        return ctx, query

    ctx.collected[field] = value
    ctx.pending_field = None
    return ctx, rewrite_query(ctx, query)


def intent_from_context(ctx: ConversationContext) -> Optional[IntentResult]:
    """
    Once every required field is collected the original intent is replayed
    as-is, without classifying the rewritten query again.
    """
    if not ctx.current_intent or ctx.pending_field:
        return None
    entities = {k: v for k, v in ctx.collected.items() if k != "original_query"}
    return IntentResult(intent=ctx.current_intent, **entities)


def missing_slot(intent: IntentResult, ctx: ConversationContext) -> Optional[str]:
    for field in REQUIRED_SLOTS.get(intent.intent, []):
        if not getattr(intent, field, None) and not ctx.collected.get(field):
            return field
    return None


def question_for(ctx: ConversationContext) -> Tuple[str, List[Dict[str, str]]]:
    """The question for the pending field, plus quick-reply actions."""
    field = ctx.pending_field or ""
    subject = ctx.collected.get("name") or ctx.collected.get("club_name") or ""
    actions: List[Dict[str, str]] = []
    if field == "year":
        actions = [
            {
                "action": "send_query",
                "label": year,
                "query": f"{subject} {year}".strip(),
            }
            for year in recent_years()
        ]
    question = SLOT_QUESTIONS.get(field, f"Could you tell me the {field}?")
    return question, actions


def ask_for(
    intent: IntentResult,
    field: str,
    query: str,
    mode: Optional[str] = None,
) -> ConversationContext:
    """Record that we are waiting on `field` for `intent`."""
    collected: Dict[str, Any] = {"original_query": query}
    if intent.intent == FIND_CLUB_MEMBERS:
        collected["club_name"] = intent.club_name or query
    else:
        collected["name"] = intent.name or query

    return ConversationContext(
        current_intent=intent.intent,
        pending_field=field,
        collected=collected,
        mode=mode,
    )
