# salesflow/session_codec.py
"""
Sérialisation Session <-> dict JSON (SQLite, Postgres, API).
Aucun secret dans le dict (credentials calendrier jamais stockés en session).
"""
from __future__ import annotations

from collections import deque
from datetime import datetime
from typing import Any, Dict

from salesflow import config
from salesflow.session import Message, Session, SessionStatus
from salesflow.variables import SessionVariables


def session_to_dict(session: Session) -> Dict[str, Any]:
    return {
        "thread_id": session.thread_id,
        "agent_id": session.agent_id,
        "current_stage_id": session.current_stage_id,
        "previous_stage_id": session.previous_stage_id,
        "variables": session.variables.to_dict(),
        "stage_history": list(session.stage_history),
        "status": session.status.value,
        "turn_count": session.turn_count,
        "created_at": session.created_at.isoformat(),
        "last_seen_at": session.last_seen_at.isoformat(),
        "messages": [
            {"role": m.role, "text": m.text, "ts": m.ts.isoformat()}
            for m in session.messages
        ],
    }


def session_from_dict(d: Dict[str, Any]) -> Session:
    session = Session(
        thread_id=d["thread_id"],
        agent_id=d["agent_id"],
        current_stage_id=d["current_stage_id"],
        previous_stage_id=d.get("previous_stage_id"),
        variables=SessionVariables.from_dict(d.get("variables")),
        stage_history=list(d.get("stage_history") or [d["current_stage_id"]]),
        status=SessionStatus(d.get("status") or "active"),
        turn_count=int(d.get("turn_count") or 0),
    )
    if d.get("created_at"):
        session.created_at = datetime.fromisoformat(d["created_at"])
    if d.get("last_seen_at"):
        session.last_seen_at = datetime.fromisoformat(d["last_seen_at"])
    session.messages = deque(
        (
            Message(role=m["role"], text=m["text"], ts=datetime.fromisoformat(m["ts"]))
            for m in d.get("messages") or []
        ),
        maxlen=config.MAX_MESSAGES_HISTORY,
    )
    return session
