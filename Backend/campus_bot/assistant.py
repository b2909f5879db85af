# campus_bot/assistant.py
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from . import prompts
from .commands import parse_reply
from .config import settings
from .db import pick_pair, pair_pools
from .documents import fetch_food, fetch_knowledge, find_club_members, find_students
from .intents import (
    IntentResult,
    FIND_PERSON,
    FIND_CLUB_MEMBERS,
    FIND_MENU_OR_SHOP,
    classify,
)
from .llm import generate, LLMError, LLMBusyError
from .schemas import Action, AssistantReply
from .slots import (
    ConversationContext,
    ask_for,
    intent_from_context,
    missing_slot,
    question_for,
    resume,
)

logger = logging.getLogger(__name__)

AI_ERROR_MESSAGE = "Sorry, I encountered an error trying to connect to the AI service."
AI_BUSY_MESSAGE = "The AI service is currently busy. Please try again in a moment."


async def _ask_model(body: str, reply_to: Optional[str]) -> str:
    try:
        return await generate(prompts.full_prompt(body, reply_to))
    except LLMBusyError:
        return AI_BUSY_MESSAGE
    except LLMError as e:
        logger.error("Model call failed: %s", e)
        return AI_ERROR_MESSAGE


def _clarification(ctx: ConversationContext, intent: Optional[str]) -> AssistantReply:
    question, actions = question_for(ctx)
    return AssistantReply(
        kind="clarify",
        message=question,
        actions=[Action(**a) for a in actions],
        intent=intent,
    )


async def _build_prompt(intent: IntentResult, query: str) -> Tuple[str, List[Dict[str, Any]]]:
    """Run the data-fetch strategy for the intent; returns its prompt and the documents."""
    pair = pick_pair()
    general_pool, student_pool = pair_pools(pair)

    if intent.intent == FIND_PERSON:
        name = intent.name or query
        docs = await asyncio.to_thread(find_students, student_pool, intent.year, name)
        logger.info("Student lookup in %s returned %d matches", intent.year, len(docs))
        return prompts.person_prompt(query, docs, name, intent.year), docs

    if intent.intent == FIND_CLUB_MEMBERS:
        club = intent.club_name or query
        docs = await asyncio.to_thread(find_club_members, student_pool, intent.year, club)
        return prompts.club_prompt(query, docs, club, intent.year), docs

    if intent.intent == FIND_MENU_OR_SHOP:
        docs = await fetch_food(general_pool)
        return prompts.food_prompt(query, docs), docs

    docs = await asyncio.to_thread(fetch_knowledge, general_pool, settings.knowledge_limit)
    return prompts.general_prompt(query, docs), docs


def _full_records(
    candidates: List[Dict[str, Any]],
    docs: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """Swap the model's {name, entryNumber} echoes for the fetched documents."""
    by_entry = {str(d["entryNumber"]): d for d in docs if d.get("entryNumber")}
    return [by_entry.get(str(c.get("entryNumber", "")), c) for c in candidates]


async def answer(
    query: str,
    mode: str = "general",
    reply_to: Optional[str] = None,
    ctx: Optional[ConversationContext] = None,
    selected_entry: Optional[str] = None,
) -> Tuple[AssistantReply, ConversationContext]:
    """
    Handle one user turn.

    Returns the reply and the conversation context to keep for the next turn.
    """
    query = (query or "").strip()

    if selected_entry and ctx is not None:
        student = ctx.candidate(selected_entry)
        if student is not None:
            text = await _ask_model(
                prompts.selected_student_prompt({"type": "Student", **student}),
                reply_to,
            )
            reply = parse_reply(text)
            return (
                AssistantReply(kind=reply.kind, message=reply.message, actions=reply.actions, intent=FIND_PERSON),
                ConversationContext(candidates=reply.candidates),
            )
        logger.warning("Selected entry %s is not among the offered candidates", selected_entry)

    ctx, routed_query = resume(ctx, query, mode)
    if ctx.awaiting_input:
        # the reply did not contain what we asked for
        return _clarification(ctx, ctx.current_intent), ctx

    intent = intent_from_context(ctx) or await classify(routed_query, mode)

    field = missing_slot(intent, ctx)
    if field:
        ctx = ask_for(intent, field, routed_query, mode)
        logger.info("Intent %s is missing %s, asking the user", intent.intent, field)
        return _clarification(ctx, intent.intent), ctx

    body, docs = await _build_prompt(intent, routed_query)
    text = await _ask_model(body, reply_to)
    reply = parse_reply(text)

    # done with this intent; only clarify candidates carry over
    return (
        AssistantReply(kind=reply.kind, message=reply.message, actions=reply.actions, intent=intent.intent),
        ConversationContext(candidates=_full_records(reply.candidates, docs)),
    )


async def fun_fact() -> AssistantReply:
    text = await _ask_model(prompts.fun_fact_prompt(), None)
    reply = parse_reply(text)
    return AssistantReply(kind=reply.kind, message=reply.message, actions=reply.actions)
