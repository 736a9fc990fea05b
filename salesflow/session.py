# salesflow/session.py
from __future__ import annotations

import copy
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Deque, Dict, List, Optional, Protocol, Tuple

from salesflow import config
from salesflow.variables import SessionVariables

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"  # posé par un superviseur externe, jamais par le moteur


@dataclass
class Message:
    role: str  # "user" | "assistant"
    text: str
    ts: datetime


@dataclass
class Session:
    thread_id: str
    agent_id: str
    current_stage_id: str
    previous_stage_id: Optional[str] = None
    variables: SessionVariables = field(default_factory=SessionVariables)
    stage_history: List[str] = field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE
    turn_count: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    last_seen_at: datetime = field(default_factory=_utcnow)
    messages: Deque[Message] = field(default_factory=lambda: deque(maxlen=config.MAX_MESSAGES_HISTORY))

    def touch(self) -> None:
        self.last_seen_at = _utcnow()

    def add_message(self, role: str, text: str) -> None:
        self.messages.append(Message(role=role, text=text, ts=_utcnow()))
        self.touch()

    def last_messages(self) -> List[Tuple[str, str]]:
        return [(m.role, m.text) for m in list(self.messages)]


def new_session(thread_id: str, agent_id: str, first_stage_id: str) -> Session:
    return Session(
        thread_id=thread_id,
        agent_id=agent_id,
        current_stage_id=first_stage_id,
        stage_history=[first_stage_id],
    )


def move_to(session: Session, stage_id: str, reason: str = "") -> bool:
    """
    Unique point de mise à jour de current_stage_id.
    Interdit d'écrire session.current_stage_id = "..." ailleurs.
    Retourne False si déjà sur l'étape (pas d'entrée d'historique).
    """
    if stage_id == session.current_stage_id:
        return False
    logger.info(
        "[TRANSITION] thread=%s %s -> %s reason=%s",
        session.thread_id, session.current_stage_id, stage_id, reason or "-",
    )
    session.previous_stage_id = session.current_stage_id
    session.current_stage_id = stage_id
    session.stage_history.append(stage_id)
    return True


class SessionRepository(Protocol):
    """Persistance des sessions (loadSession / saveSession)."""

    def get(self, thread_id: str) -> Optional[Session]:
        ...

    def save(self, session: Session) -> None:
        ...


class SessionPersistenceError(Exception):
    """Échec d'écriture de session : remonte à l'appelant (jamais avalé)."""


class SessionStore:
    """
    In-memory session store (tests, dev).
    Copie profonde en lecture/écriture : une mutation non sauvegardée ne fuit jamais dans le store.
    """
    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def get(self, thread_id: str) -> Optional[Session]:
        s = self._sessions.get(thread_id)
        return copy.deepcopy(s) if s is not None else None

    def save(self, session: Session) -> None:
        self._sessions[session.thread_id] = copy.deepcopy(session)
