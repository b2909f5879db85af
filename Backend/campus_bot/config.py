# campus_bot/config.py
import os
import json
import logging
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()
logger = logging.getLogger(__name__)


class DatabasePair(BaseModel):
    """A general (knowledge / food) database and a student directory database."""

    name: str
    general: str
    student: str


class Settings(BaseModel):
    # -------------------------------------------------------------------
    # Gemini (OpenAI-compatible endpoint)
    # -------------------------------------------------------------------
    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "").strip()
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash").strip()
    gemini_base_url: str = os.getenv(
        "GEMINI_BASE_URL",
        "https://generativelanguage.googleapis.com/v1beta/openai/",
    ).strip()
    llm_temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.4"))
    llm_max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "1400"))
    llm_max_attempts: int = int(os.getenv("LLM_MAX_ATTEMPTS", "5"))
    llm_backoff_base: float = float(os.getenv("LLM_BACKOFF_BASE", "1.0"))

    # -------------------------------------------------------------------
    # Postgres
    # -------------------------------------------------------------------
    db_url: str = os.getenv("DB_CONNECTION_STRING", "").strip()
    database_pairs_raw: str = os.getenv("DATABASE_PAIRS", "").strip()
    knowledge_limit: int = int(os.getenv("KNOWLEDGE_LIMIT", "50"))

    # -------------------------------------------------------------------
    # App
    # -------------------------------------------------------------------
    campus_name: str = os.getenv("CAMPUS_NAME", "IIT Delhi")
    allowed_origins: str = os.getenv("ALLOWED_ORIGINS", "")
    # empty disables the admin dashboard
    admin_dash_token: str = os.getenv("ADMIN_DASH_TOKEN", "").strip()


settings = Settings()


def database_pairs(cfg: Optional[Settings] = None) -> List[DatabasePair]:
    """
    Parse DATABASE_PAIRS, e.g.

        [{"name": "A", "general": "postgresql://...", "student": "postgresql://..."}]

    Without it, both roles use DB_CONNECTION_STRING.
    """
    cfg = cfg or settings
    if cfg.database_pairs_raw:
        try:
            raw = json.loads(cfg.database_pairs_raw)
        except json.JSONDecodeError as e:
            raise RuntimeError(f"DATABASE_PAIRS is not valid JSON: {e}") from e
        pairs = [DatabasePair.model_validate(item) for item in raw]
        if pairs:
            return pairs
        logger.warning("DATABASE_PAIRS is empty, falling back to DB_CONNECTION_STRING")

    if not cfg.db_url:
        raise RuntimeError("DB_CONNECTION_STRING is not set")
    return [DatabasePair(name="primary", general=cfg.db_url, student=cfg.db_url)]
