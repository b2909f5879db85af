# campus_bot/llm.py
import re
import random
import asyncio
import logging
from typing import Optional

from openai import AsyncOpenAI, APIError, APIStatusError, RateLimitError

from .config import settings

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------
#  Gemini via its OpenAI-compatible endpoint
# -------------------------------------------------------------------
_client: Optional[AsyncOpenAI] = None


class LLMError(RuntimeError):
    """The model could not produce an answer."""


class LLMBusyError(LLMError):
    """The model kept answering 429 until we ran out of attempts."""


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is not None:
        return _client
    if not settings.gemini_api_key:
        raise LLMError("GEMINI_API_KEY is not set")
    _client = AsyncOpenAI(
        api_key=settings.gemini_api_key,
        base_url=settings.gemini_base_url,
        # retries are handled below so 429 backoff follows our own schedule
        max_retries=0,
    )
    return _client


def backoff_delay(attempt: int, base: Optional[float] = None) -> float:
    """Exponential backoff with up to one `base` of jitter."""
    base = settings.llm_backoff_base if base is None else base
    return base * (2 ** attempt) + random.uniform(0, base)


async def generate(
    prompt: str,
    json_mode: bool = False,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> str:
    """
    Send a single-turn prompt to the model and return the text of the answer.

    Rate limited calls (HTTP 429) are retried with exponential backoff up to
    LLM_MAX_ATTEMPTS times; after that LLMBusyError is raised. Every other
    failure raises LLMError.
    """
    client = _get_client()
    kwargs = {
        "model": settings.gemini_model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": settings.llm_temperature if temperature is None else temperature,
        "max_tokens": settings.llm_max_tokens if max_tokens is None else max_tokens,
    }
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    attempt = 0
    while attempt < settings.llm_max_attempts:
        try:
            resp = await client.chat.completions.create(**kwargs)
        except RateLimitError:
            attempt += 1
            delay = backoff_delay(attempt)
            logger.warning(
                "Model rate limited (attempt %d/%d), retrying in %.1fs",
                attempt,
                settings.llm_max_attempts,
                delay,
            )
            await asyncio.sleep(delay)
            continue
        except APIStatusError as e:
            logger.error("Model API error: %s", e.status_code)
            raise LLMError(f"API Error: {e.status_code}") from e
        except APIError as e:
            logger.error("Model call failed: %s", e)
            raise LLMError("Failed to call the model") from e

        if not resp.choices:
            raise LLMError("Model returned no choices")
        return resp.choices[0].message.content or ""

    raise LLMBusyError("The AI service is currently busy")


_FENCE_RE = re.compile(r"```(?:json)?\n?|\n?```")


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()
