# campus_bot/documents.py
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from psycopg_pool import ConnectionPool

logger = logging.getLogger(__name__)

KNOWLEDGE_COLLECTION = "knowledge_base"
MENU_COLLECTION = "mess_menus"
SHOP_COLLECTION = "campus_shops"


def student_collection(year: str) -> str:
    return f"students_{year}"


def fetch_collection(
    pool: ConnectionPool,
    collection: str,
    doc_type: str,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Return every document of a collection, tagged with `type`."""
    sql = "SELECT data FROM documents WHERE collection = %s ORDER BY doc_id"
    params: Tuple[Any, ...] = (collection,)
    if limit is not None:
        sql += " LIMIT %s"
        params = (collection, limit)

    with pool.connection() as conn:
        rows = conn.execute(sql, params).fetchall()

    docs: List[Dict[str, Any]] = []
    for (data,) in rows:
        if isinstance(data, dict):
            docs.append({"type": doc_type, **data})
    return docs


def find_students(pool: ConnectionPool, year: str, name: str) -> List[Dict[str, Any]]:
    """Students of an entry year whose name contains `name` (case-insensitive)."""
    needle = (name or "").strip().lower()
    students = fetch_collection(pool, student_collection(year), "Student")
    return [s for s in students if needle in str(s.get("name", "")).lower()]


def find_club_members(pool: ConnectionPool, year: str, club: str) -> List[Dict[str, Any]]:
    needle = (club or "").strip().lower()
    students = fetch_collection(pool, student_collection(year), "Student")
    members = []
    for s in students:
        clubs = s.get("clubs") or []
        if isinstance(clubs, str):
            clubs = [clubs]
        if any(needle in str(c).lower() for c in clubs):
            members.append(s)
    return members


async def fetch_food(pool: ConnectionPool) -> List[Dict[str, Any]]:
    """Hostel mess menus and campus shops, fetched side by side."""
    menus, shops = await asyncio.gather(
        asyncio.to_thread(fetch_collection, pool, MENU_COLLECTION, "Menu"),
        asyncio.to_thread(fetch_collection, pool, SHOP_COLLECTION, "Shop"),
    )
    return [*menus, *shops]


def fetch_knowledge(pool: ConnectionPool, limit: int = 50) -> List[Dict[str, Any]]:
    return fetch_collection(pool, KNOWLEDGE_COLLECTION, "Knowledge", limit=limit)
