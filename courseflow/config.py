"""Environment-driven configuration for the CourseFlow service."""

# pylint: disable=invalid-name

import os
from typing import Optional

from dotenv import load_dotenv

from courseflow.logger import logger

# Load environment variables
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {raw!r}. Using default {default}.")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {raw!r}. Using default {default}.")
        return default


# --- Storage ---
DB_PATH: str = os.environ.get("COURSEFLOW_DB_PATH", "courseflow.db")

# --- OpenAI Assistants ---
OPENAI_API_KEY: Optional[str] = os.environ.get("OPENAI_API_KEY")
OPENAI_MODEL: Optional[str] = os.environ.get("OPENAI_MODEL")  # None keeps the assistant's own model

if not OPENAI_API_KEY:
    logger.error("Missing environment variable: OPENAI_API_KEY. Chat submissions will fail.")

# --- Run polling ---
POLL_INTERVAL_SECONDS: float = _env_float("CHAT_POLL_INTERVAL_SECONDS", 2.0)
POLL_MAX_ATTEMPTS: int = _env_int("CHAT_POLL_MAX_ATTEMPTS", 30)
POLL_MAX_ELAPSED_SECONDS: float = _env_float("CHAT_POLL_MAX_ELAPSED_SECONDS", 60.0)
POLL_BACKOFF: float = _env_float("CHAT_POLL_BACKOFF", 1.0)
POLL_MAX_INTERVAL_SECONDS: float = _env_float("CHAT_POLL_MAX_INTERVAL_SECONDS", 10.0)

# --- Unlock detection ---
# "strict", "legacy", or a custom regular expression
UNLOCK_CODE_PATTERN: str = os.environ.get("UNLOCK_CODE_PATTERN", "strict")

# --- Notifications ---
QNA_WEBHOOK_URL: Optional[str] = os.environ.get("QNA_WEBHOOK_URL")
NOTIFICATION_TIMEOUT_SECONDS: float = _env_float("NOTIFICATION_TIMEOUT_SECONDS", 5.0)
