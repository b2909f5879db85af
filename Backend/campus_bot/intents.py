# campus_bot/intents.py
import re
import json
import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from .llm import generate, strip_code_fences, LLMError

logger = logging.getLogger(__name__)

# ---------------- INTENTS & MODES ----------------

FIND_PERSON = "find_person"
FIND_CLUB_MEMBERS = "find_club_members"
FIND_MENU_OR_SHOP = "find_menu_or_shop"
GENERAL_QUESTION = "general_question"

INTENTS = (FIND_PERSON, FIND_CLUB_MEMBERS, FIND_MENU_OR_SHOP, GENERAL_QUESTION)

MODE_GENERAL = "general"
MODE_STUDENT = "student"
MODE_FOOD = "food"

ABBREVIATIONS = {
    "jwala": "Jwalamukhi Hostel",
    "ccd": "Cafe Coffee Day",
}

_YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")


class IntentResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    intent: str = GENERAL_QUESTION
    name: Optional[str] = None
    year: Optional[str] = None
    club_name: Optional[str] = None
    hostel_name: Optional[str] = None
    shop_name: Optional[str] = None
    day: Optional[str] = None
    meal: Optional[str] = None

    @field_validator("intent", mode="before")
    @classmethod
    def _known_intent(cls, v):
        v = (str(v).strip().lower() if v else "") or GENERAL_QUESTION
        return v if v in INTENTS else GENERAL_QUESTION

    @field_validator("year", mode="before")
    @classmethod
    def _year_as_text(cls, v):
        # models return 2024, "2024", "" or "2nd year"; only a 4-digit year is usable
        if v is None:
            return None
        return extract_year(str(v))


def extract_year(text: str) -> Optional[str]:
    m = _YEAR_RE.search(text or "")
    return m.group(0) if m else None


def intent_prompt(query: str) -> str:
    abbreviations = ", ".join(f"'{k}'->'{v}'" for k, v in ABBREVIATIONS.items())
    return (
        "Analyze the user's query to determine their primary intent and extract key entities. "
        "The intent can be 'find_person', 'find_club_members', 'find_menu_or_shop', "
        "or 'general_question'.\n"
        "- For 'find_menu_or_shop', extract 'hostel_name', 'shop_name', 'day', and 'meal'.\n"
        "- For 'find_person', extract 'name' and 'year'.\n"
        "- For 'find_club_members', extract 'club_name' and 'year'.\n"
        f"- Recognize abbreviations: {abbreviations}, etc.\n"
        f'User Query: "{query}"\n'
        "Respond ONLY with a valid JSON object."
    )


def parse_intent(raw: str) -> IntentResult:
    """
    Parse the model's JSON classification. Raises ValueError when the text
    is not a JSON object.
    """
    data = json.loads(strip_code_fences(raw))
    if not isinstance(data, dict):
        raise ValueError("intent payload is not a JSON object")
    return IntentResult.model_validate(data)


SEARCH_WORDS = ("find", "search")


def keyword_fallback(query: str, mode: str) -> IntentResult:
    """Cheap routing for when the model's classification is unusable."""
    q = (query or "").lower()
    if any(word in q for word in SEARCH_WORDS):
        if mode == MODE_STUDENT:
            return IntentResult(intent=FIND_PERSON)
        if mode == MODE_FOOD:
            return IntentResult(intent=FIND_MENU_OR_SHOP)
    return IntentResult(intent=GENERAL_QUESTION)


def apply_mode(result: IntentResult, mode: str, query: str) -> IntentResult:
    """The mode the user picked in the UI wins over the classifier."""
    if mode == MODE_FOOD and result.intent != FIND_MENU_OR_SHOP:
        result.intent = FIND_MENU_OR_SHOP
    elif mode == MODE_STUDENT and result.intent == GENERAL_QUESTION:
        result.intent = FIND_PERSON
        if not result.name:
            result.name = query
    elif mode == MODE_GENERAL and result.intent != GENERAL_QUESTION:
        result.intent = GENERAL_QUESTION
    return result


async def classify(query: str, mode: str) -> IntentResult:
    try:
        raw = await generate(intent_prompt(query), json_mode=True)
        result = parse_intent(raw) if raw else IntentResult()
    except (ValueError, LLMError) as e:
        logger.warning("Could not parse intent, using keyword fallback: %s", e)
        result = keyword_fallback(query, mode)

    result = apply_mode(result, mode, query)
    logger.info("Routed query to intent=%s (mode=%s)", result.intent, mode)
    return result
