# campus_bot/prompts.py
import json
from datetime import date
from typing import Any, Dict, List, Optional

from .config import settings

# -------------------------------------------------------------------
#  Out-of-band tokens the model may answer with instead of prose
# -------------------------------------------------------------------
CLARIFY_PREFIX = "CLARIFY:"
COMMAND_PREFIX = "COMMAND::"

COMMAND_INSTRUCTIONS = f"""
Special replies (use them ONLY when they apply, and then reply with nothing else):
- If the user asks to open or go to a website and the Context has its link, reply exactly:
  {COMMAND_PREFIX}OPEN_URL::<full https link>
- If the user wants to log in to a campus portal (e.g. Moodle, ERP, Webmail), reply exactly:
  {COMMAND_PREFIX}REQUEST_CREDENTIALS::<portal name>
""".strip()

PERSONA_SUFFIX = "Your response should be witty, helpful, and use Markdown and emojis."

REPLY_CONTEXT_TEMPLATE = (
    "The user is directly replying to your previous message. "
    "Use this as the primary context.\n"
    '**Replied-To Message:** "{text}"\n\n'
)


def _context(docs: List[Dict[str, Any]]) -> str:
    return json.dumps(docs, ensure_ascii=False, default=str)


def today_name(today: Optional[date] = None) -> str:
    return (today or date.today()).strftime("%A")


def person_prompt(query: str, docs: List[Dict[str, Any]], name: str, year: str) -> str:
    context = (
        _context(docs)
        if docs
        else f'No student found with name "{name}" in the {year} directory.'
    )
    return f"""Answer the user's question about a student based ONLY on the provided context.
If multiple students are in the context, use the CLARIFY command: reply with
{CLARIFY_PREFIX} immediately followed by a JSON array of the matching students,
each with "name" and "entryNumber", and nothing else.
**Context:** {context}
---
**User's Question:** "{query}\""""


def club_prompt(query: str, docs: List[Dict[str, Any]], club: str, year: str) -> str:
    context = (
        _context(docs)
        if docs
        else f'No members of "{club}" found in the {year} directory.'
    )
    return f"""Answer the user's question about members of a club based ONLY on the provided context.
List members with their names and entry numbers.
**Context:** {context}
---
**User's Question:** "{query}\""""


def food_prompt(query: str, docs: List[Dict[str, Any]], today: Optional[date] = None) -> str:
    return f"""You are an expert on all food at {settings.campus_name} (hostel messes and campus shops).
Answer the user's question based ONLY on the provided JSON "Context".
- Search through all hostel menus and shop menus to find the answer.
- If the user asks about "tonight" or "today", use the provided "Current Day".
- Be friendly and use emojis. List items, prices, and hours clearly.
**Current Day:** {today_name(today)}
**Context:** {_context(docs)}
---
**User's Question:** "{query}\""""


def general_prompt(query: str, docs: List[Dict[str, Any]]) -> str:
    return f"""Answer the user's general question based ONLY on the provided context.
{COMMAND_INSTRUCTIONS}
**Context:** {_context(docs)}
---
**User's Question:** "{query}\""""


def selected_student_prompt(student: Dict[str, Any]) -> str:
    return f"""The user picked this student from a list of matches. Tell them about the student
based ONLY on this record, and ask what else they would like to know.
**Context:** {_context([student])}"""


def fun_fact_prompt() -> str:
    return (
        f"Tell me a fun, interesting, or little-known fact about {settings.campus_name}, "
        "its history, campus, or a notable achievement. Make it sound exciting!"
    )


def full_prompt(body: str, reply_to: Optional[str] = None) -> str:
    prefix = REPLY_CONTEXT_TEMPLATE.format(text=reply_to) if reply_to else ""
    return f"{prefix}{body} {PERSONA_SUFFIX}"


# -------------------------------------------------------------------
#  Collection planner + synthesizer (POST /api)
# -------------------------------------------------------------------
def history_text(history: List[Dict[str, str]]) -> str:
    return "\n".join(f"{turn.get('role', 'user')}: {turn.get('text', '')}" for turn in history)


def planner_prompt(query: str, history: str) -> str:
    return f"""You are a query planning assistant. Decide which collections must be read to answer
the user's query, using the conversation history for context. Respond ONLY with a valid JSON
object of the form {{"collections_to_query": ["..."]}}.
Available collections: "mess_menus", "campus_shops", "knowledge_base", "clubs_YYYY",
"students_YYYY" (where YYYY is an entry year like 2024, 2025).

Examples:
- Query: "monil from 2024" -> ["students_2024"]
- Query: "dance club head" -> ["clubs_2024", "clubs_2025", "students_2024", "students_2025"]
- Query: "paneer roll" -> ["mess_menus", "campus_shops"]
- Query: "hi" -> ["knowledge_base"]

CONVERSATION HISTORY:
{history}

USER QUERY: "{query}"
"""


def synthesizer_prompt(
    query: str,
    history: str,
    knowledge: Dict[str, List[Dict[str, Any]]],
    today: Optional[date] = None,
) -> str:
    return f"""You are a smart {settings.campus_name} assistant. Answer based ONLY on the
conversation history and the targeted knowledge below.
1. If the user gives a year after you asked for one, connect it to their earlier question about a student.
2. Synthesize rather than list: when several menus or shops match, present one combined list with prices and locations.
3. Today is {today_name(today)}. Use this for date-related questions.

**CONVERSATION HISTORY:**
{history}

**TARGETED KNOWLEDGE (your only source of truth):**
{json.dumps(knowledge, ensure_ascii=False, default=str)}
---
Answer the last user query: "{query}"
{PERSONA_SUFFIX}"""
