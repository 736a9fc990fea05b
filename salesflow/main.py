# salesflow/main.py
from __future__ import annotations

import os
from pathlib import Path

# Charger .env à la racine du projet (ANTHROPIC_API_KEY, DATABASE_URL, etc.) avant config
_env_path = Path(__file__).resolve().parent.parent / ".env"
if _env_path.exists():
    from dotenv import load_dotenv
    load_dotenv(_env_path)

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from salesflow import config
from salesflow.engine import StageEngine, create_engine
from salesflow.session import SessionPersistenceError
from salesflow.session_codec import session_to_dict
from salesflow.thread_locks import LockTimeout

app = FastAPI()
_logger = logging.getLogger(__name__)

_cors_origins = (os.environ.get("CORS_ORIGINS") or "http://localhost:5173").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _cors_origins if o.strip()],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

_engine: Optional[StageEngine] = None


def get_engine() -> StageEngine:
    """Engine créé au premier appel (pas à l'import) ; remplaçable via set_engine (tests)."""
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


def set_engine(engine: Optional[StageEngine]) -> None:
    global _engine
    _engine = engine


class ChatBody(BaseModel):
    thread_id: str = Field(..., min_length=1, max_length=200)
    agent_id: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)


@app.post("/api/chat")
def chat(body: ChatBody) -> Dict[str, Any]:
    """Un tour de conversation : réponse + étape courante (aperçu / intégrations)."""
    try:
        result = get_engine().handle_message(body.message, body.thread_id, body.agent_id)
    except LockTimeout:
        raise HTTPException(status_code=409, detail="Thread busy, retry later")
    except SessionPersistenceError as e:
        _logger.error("chat_persistence_error thread=%s: %s", body.thread_id, e)
        raise HTTPException(status_code=503, detail="Session storage unavailable")
    _logger.info(
        "chat_turn",
        extra={
            "thread_id": body.thread_id,
            "agent_id": body.agent_id,
            "stage_id": result.stage_id,
            "transitioned": result.transitioned,
            "degraded": result.degraded,
        },
    )
    return {
        "reply": result.reply,
        "stage": {"id": result.stage_id, "name": result.stage_name},
        "previous_stage_id": result.previous_stage_id,
        "transitioned": result.transitioned,
        "variables": result.variables,
        "meeting_created": result.meeting_created,
        "degraded": result.degraded,
    }


@app.get("/api/threads/{thread_id}/state")
def thread_state(thread_id: str) -> Dict[str, Any]:
    """Snapshot de session (debug / dashboard). 404 si thread inconnu."""
    session = get_engine().get_state(thread_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Thread not found")
    return session_to_dict(session)


@app.get("/health")
def health() -> dict:
    """Toujours 200 ; infos de config sans I/O."""
    return {
        "status": "ok",
        "timezone": config.TIMEZONE,
        "pg_sessions": config.use_pg_sessions(),
        "calendar_provider": config.CALENDAR_PROVIDER,
        "llm_extraction_enabled": config.LLM_EXTRACTION_ENABLED,
    }


def run() -> None:
    """Point d'entrée `salesflow-server` : lit PORT depuis l'env et lance uvicorn."""
    import uvicorn

    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run("salesflow.main:app", host="0.0.0.0", port=port)
