# salesflow/config.py
from __future__ import annotations
import logging
import os
from datetime import datetime
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


def _env_bool(key: str, default: str = "false") -> bool:
    return os.getenv(key, default).lower() in ("true", "1", "yes")


# --- Fuseau / horaires commerciaux ---
# Fuseau explicite pour "aujourd'hui", les jours de semaine, le prompt et les RDV.
TIMEZONE = os.getenv("SALESFLOW_TIMEZONE", "America/Sao_Paulo")
BUSINESS_HOUR_MIN = int(os.getenv("BUSINESS_HOUR_MIN", "6"))
BUSINESS_HOUR_MAX = int(os.getenv("BUSINESS_HOUR_MAX", "22"))
# 0 = lundi ... 6 = dimanche (convention datetime.weekday())
BUSINESS_DAYS = tuple(
    int(d) for d in os.getenv("BUSINESS_DAYS", "0,1,2,3,4").split(",") if d.strip()
)
NEXT_BUSINESS_DAYS_SHOWN = int(os.getenv("NEXT_BUSINESS_DAYS_SHOWN", "3"))

# Réunion
MEETING_DURATION_MINUTES = int(os.getenv("MEETING_DURATION_MINUTES", "45"))

# Extraction
NAME_MAX_MESSAGE_LEN = 30  # message plus long => jamais lu comme un nom

# LLM réponse (generateReply)
LLM_PROVIDER_MODEL = os.getenv("LLM_PROVIDER_MODEL", "claude-sonnet-4-20250514")
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "1024"))
LLM_REPLY_TIMEOUT_SEC = float(os.getenv("LLM_REPLY_TIMEOUT_SEC", "20"))

# Seconde passe d'extraction LLM : active dès que ANTHROPIC_API_KEY est défini (LLM_EXTRACTION_ENABLED=false pour couper)
LLM_EXTRACTION_ENABLED = _env_bool("LLM_EXTRACTION_ENABLED", "true")
LLM_EXTRACTION_TIMEOUT_MS = int(os.getenv("LLM_EXTRACTION_TIMEOUT_MS", "4000"))
LLM_EXTRACTION_MAX_TEXT_LEN = int(os.getenv("LLM_EXTRACTION_MAX_TEXT_LEN", "1500"))

# Calendrier
CALENDAR_TIMEOUT_SEC = float(os.getenv("CALENDAR_TIMEOUT_SEC", "10"))
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
CALENDAR_PROVIDER = os.getenv("CALENDAR_PROVIDER", "google").strip().lower()
CALENDAR_CREDENTIALS_FILE = os.getenv("CALENDAR_CREDENTIALS_FILE", "calendar_credentials.json")
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

# Persistance
SESSIONS_DB_PATH = os.getenv("SESSIONS_DB_PATH", "sessions.db")
SESSION_LOCK_TIMEOUT_SEC = float(os.getenv("SESSION_LOCK_TIMEOUT_SEC", "30"))

# Base de connaissance (RAG)
KNOWLEDGE_MIN_SCORE = float(os.getenv("KNOWLEDGE_MIN_SCORE", "0.55"))
KNOWLEDGE_TOP_K = int(os.getenv("KNOWLEDGE_TOP_K", "3"))
KNOWLEDGE_FILE = os.getenv("KNOWLEDGE_FILE", "knowledge.json")
AGENTS_FILE = os.getenv("AGENTS_FILE", "agents.json")

# UX / Inputs
MAX_MESSAGE_LENGTH = 2000
MAX_MESSAGES_HISTORY = 20


def database_url() -> str:
    """URL Postgres (vide => SQLite). Lecture runtime pour mock facile en test."""
    return (os.getenv("DATABASE_URL") or "").strip()


def use_pg_sessions() -> bool:
    return bool(database_url()) and _env_bool("USE_PG_SESSIONS")


def tzinfo() -> ZoneInfo:
    return ZoneInfo(TIMEZONE)


def now_local() -> datetime:
    """Horloge par défaut du moteur : maintenant dans le fuseau configuré."""
    return datetime.now(tzinfo())
