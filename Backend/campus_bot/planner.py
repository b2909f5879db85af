# campus_bot/planner.py
"""
History-aware collection planner.

The model first picks which collections answer the query, we read exactly
those (student and club directories from the student database, everything
else from the general one), and a second call writes the answer from that
targeted context.
"""
import re
import json
import asyncio
import logging
from typing import Any, Dict, List

from psycopg_pool import ConnectionPool

from . import prompts
from .db import pick_pair, pair_pools
from .documents import (
    KNOWLEDGE_COLLECTION,
    MENU_COLLECTION,
    SHOP_COLLECTION,
    fetch_collection,
)
from .llm import generate, strip_code_fences, LLMError

logger = logging.getLogger(__name__)

# used when the plan cannot be read
FALLBACK_COLLECTIONS = [
    MENU_COLLECTION,
    SHOP_COLLECTION,
    KNOWLEDGE_COLLECTION,
    "clubs_2025",
    "students_2024",
    "students_2025",
]

_DOC_TYPES = {
    MENU_COLLECTION: "Menu",
    SHOP_COLLECTION: "Shop",
    KNOWLEDGE_COLLECTION: "Knowledge",
}
_YEARLY = re.compile(r"^(students|clubs)_(19|20)\d{2}$")


def is_known_collection(name: str) -> bool:
    return name in _DOC_TYPES or bool(_YEARLY.match(name))


def is_student_collection(name: str) -> bool:
    return name.startswith("students_") or name.startswith("clubs_")


def doc_type(name: str) -> str:
    if name.startswith("students_"):
        return "Student"
    if name.startswith("clubs_"):
        return "Club"
    return _DOC_TYPES.get(name, "Document")


def parse_plan(raw: str) -> List[str]:
    """
    Read the planner's answer: {"collections_to_query": [...]} or a bare list.
    Unknown names are dropped; anything that is not a plan raises ValueError.
    """
    data = json.loads(strip_code_fences(raw))
    if isinstance(data, dict):
        data = data.get("collections_to_query", data.get("collections"))
    if not isinstance(data, list):
        raise ValueError("plan is not a list of collections")

    plan: List[str] = []
    for name in data:
        name = str(name).strip()
        if not is_known_collection(name):
            logger.warning("Planner asked for unknown collection %r", name)
            continue
        if name not in plan:
            plan.append(name)
    return plan


async def plan_collections(query: str, history: str) -> List[str]:
    try:
        raw = await generate(prompts.planner_prompt(query, history), json_mode=True)
        plan = parse_plan(raw)
    except (ValueError, LLMError) as e:
        logger.warning("Could not read collection plan, using fallback: %s", e)
        plan = list(FALLBACK_COLLECTIONS)
    logger.info("Planned collections: %s", plan)
    return plan


async def fetch_planned(
    plan: List[str],
    general_pool: ConnectionPool,
    student_pool: ConnectionPool,
) -> Dict[str, List[Dict[str, Any]]]:
    """Read every planned collection side by side, keyed by collection name."""
    results = await asyncio.gather(
        *(
            asyncio.to_thread(
                fetch_collection,
                student_pool if is_student_collection(name) else general_pool,
                name,
                doc_type(name),
            )
            for name in plan
        )
    )
    return dict(zip(plan, results))


async def plan_and_answer(query: str, history: List[Dict[str, str]]) -> str:
    history_text = prompts.history_text(history)
    plan = await plan_collections(query, history_text)

    general_pool, student_pool = pair_pools(pick_pair())
    knowledge = await fetch_planned(plan, general_pool, student_pool)

    return await generate(prompts.synthesizer_prompt(query, history_text, knowledge))
