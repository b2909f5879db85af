# campus_bot/commands.py
"""
Interpret the special tokens the model is told to emit instead of prose.

    CLARIFY:[{"name": "...", "entryNumber": "..."}, ...]
    COMMAND::OPEN_URL::https://...
    COMMAND::REQUEST_CREDENTIALS::Moodle

Anything that does not parse cleanly is shown to the user as a normal message.
"""
import json
import logging
from typing import Any, Dict, List
from urllib.parse import urlparse

from .llm import strip_code_fences
from .prompts import CLARIFY_PREFIX, COMMAND_PREFIX
from .schemas import Action, ModelReply

logger = logging.getLogger(__name__)

EMPTY_REPLY = "Sorry, I couldn't get a response."
CLARIFY_MESSAGE = "I found a few people with that name! 🤔 Which one are you looking for?"
CLARIFY_FALLBACK = (
    "I found a few people with that name, but had a little trouble listing them out. "
    "Could you be more specific?"
)

OPEN_URL = "OPEN_URL"
REQUEST_CREDENTIALS = "REQUEST_CREDENTIALS"


def _clarify(payload: str) -> ModelReply:
    try:
        students = json.loads(strip_code_fences(payload))
    except json.JSONDecodeError:
        logger.warning("Malformed CLARIFY payload from model")
        return ModelReply(kind="message", message=CLARIFY_FALLBACK)

    if isinstance(students, dict):
        students = [students]
    candidates: List[Dict[str, Any]] = [
        s for s in students if isinstance(s, dict) and s.get("name")
    ] if isinstance(students, list) else []
    if not candidates:
        logger.warning("CLARIFY payload had no usable candidates")
        return ModelReply(kind="message", message=CLARIFY_FALLBACK)

    actions = [
        Action(
            action="select_student",
            label=str(s["name"]),
            entry=str(s.get("entryNumber", "")) or None,
            query=f"Tell me about {s['name']}",
        )
        for s in candidates
    ]
    return ModelReply(
        kind="clarify",
        message=CLARIFY_MESSAGE,
        actions=actions,
        candidates=candidates,
    )


def _is_web_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _command(body: str, raw: str) -> ModelReply:
    name, _, arg = body.partition("::")
    name = name.strip().upper()
    arg = arg.strip()

    if name == OPEN_URL and _is_web_url(arg):
        return ModelReply(
            kind="command",
            message=f"Opening [{arg}]({arg}) 🔗",
            actions=[Action(action="open_url", label="Open link", url=arg)],
        )
    if name == REQUEST_CREDENTIALS and arg:
        # The UI collects the credentials and logs in itself; nothing comes back here.
        return ModelReply(
            kind="command",
            message=f"Please sign in to **{arg}** to continue 🔐",
            actions=[
                Action(action="request_credentials", label=f"Sign in to {arg}", service=arg)
            ],
        )

    logger.warning("Ignoring unknown or malformed command %r", name)
    return ModelReply(kind="message", message=raw)


def parse_reply(text: str) -> ModelReply:
    text = (text or "").strip()
    if not text:
        return ModelReply(kind="message", message=EMPTY_REPLY)
    if text.startswith(CLARIFY_PREFIX):
        return _clarify(text[len(CLARIFY_PREFIX):])
    if text.startswith(COMMAND_PREFIX):
        return _command(text[len(COMMAND_PREFIX):], text)
    return ModelReply(kind="message", message=text)
