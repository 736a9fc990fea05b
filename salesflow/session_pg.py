# salesflow/session_pg.py
"""
Persistance sessions Postgres (DATABASE_URL) + lock par thread inter-process.

Le lock prend une ligne `conversation_locks` en SELECT ... FOR UPDATE (lock_timeout court).
Pendant le lock, save() réutilise la même connexion : l'écriture de session est commitée
avec la libération du lock (atomique vis-à-vis des autres workers).
"""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Optional

from salesflow import config
from salesflow.session import Session, SessionPersistenceError
from salesflow.session_codec import session_from_dict, session_to_dict
from salesflow.thread_locks import LockTimeout

logger = logging.getLogger(__name__)

# Connexion du lock en cours (save dans la même transaction)
_lock_conn: ContextVar[Any] = ContextVar("pg_session_lock_conn", default=None)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS conversation_sessions (
    thread_id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL,
    current_stage_id TEXT NOT NULL,
    status TEXT NOT NULL,
    state_json JSONB NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE TABLE IF NOT EXISTS conversation_locks (
    thread_id TEXT PRIMARY KEY
);
"""

_UPSERT_SQL = """
INSERT INTO conversation_sessions (thread_id, agent_id, current_stage_id, status, state_json, updated_at)
VALUES (%s, %s, %s, %s, %s::jsonb, now())
ON CONFLICT (thread_id) DO UPDATE SET
    agent_id = EXCLUDED.agent_id,
    current_stage_id = EXCLUDED.current_stage_id,
    status = EXCLUDED.status,
    state_json = EXCLUDED.state_json,
    updated_at = now()
"""


def _is_lock_error(e: Exception) -> bool:
    msg = str(e).lower()
    return "lock" in msg or "timeout" in msg or "55p03" in msg or "canceling" in msg


class PgSessionStore:
    """Session store Postgres (psycopg 3)."""

    def __init__(self, url: Optional[str] = None):
        self._url = url or config.database_url()
        if not self._url:
            raise ValueError("DATABASE_URL required for PgSessionStore")

    def ensure_schema(self) -> None:
        import psycopg
        with psycopg.connect(self._url) as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
            conn.commit()

    def get(self, thread_id: str) -> Optional[Session]:
        import psycopg

        def _read(conn) -> Optional[Session]:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT state_json FROM conversation_sessions WHERE thread_id = %s",
                    (thread_id,),
                )
                row = cur.fetchone()
            if not row:
                return None
            data = row[0] if isinstance(row[0], dict) else json.loads(row[0])
            return session_from_dict(data)

        conn = _lock_conn.get()
        if conn is not None:
            return _read(conn)
        with psycopg.connect(self._url) as c:
            return _read(c)

    def save(self, session: Session) -> None:
        import psycopg

        data = session_to_dict(session)
        params = (
            data["thread_id"], data["agent_id"], data["current_stage_id"], data["status"],
            json.dumps(data, ensure_ascii=False),
        )
        try:
            conn = _lock_conn.get()
            if conn is not None:
                # commit à la sortie du lock
                with conn.cursor() as cur:
                    cur.execute(_UPSERT_SQL, params)
                return
            with psycopg.connect(self._url) as c:
                with c.cursor() as cur:
                    cur.execute(_UPSERT_SQL, params)
                c.commit()
        except psycopg.Error as e:
            logger.error("[SESSION] pg save failed thread=%s: %s", session.thread_id, e)
            raise SessionPersistenceError(str(e)) from e


class PgThreadLocks:
    """Lock par thread partagé entre workers (Postgres)."""

    def __init__(self, url: Optional[str] = None, timeout_seconds: Optional[float] = None):
        self._url = url or config.database_url()
        self._timeout = config.SESSION_LOCK_TIMEOUT_SEC if timeout_seconds is None else timeout_seconds

    @contextmanager
    def hold(self, thread_id: str) -> Iterator[None]:
        """
        SELECT ... FOR UPDATE sur conversation_locks avec lock_timeout.
        Lève LockTimeout si timeout. Commit à la sortie (libère le lock + écrit la session).
        """
        import psycopg

        try:
            conn = psycopg.connect(self._url)
        except psycopg.Error as e:
            raise SessionPersistenceError(f"pg connect failed: {e}") from e
        try:
            try:
                with conn.cursor() as cur:
                    cur.execute(
                        "INSERT INTO conversation_locks (thread_id) VALUES (%s) ON CONFLICT DO NOTHING",
                        (thread_id,),
                    )
                    conn.commit()
                    cur.execute("SET LOCAL lock_timeout = %s", (f"{int(self._timeout * 1000)}ms",))
                    cur.execute(
                        "SELECT 1 FROM conversation_locks WHERE thread_id = %s FOR UPDATE",
                        (thread_id,),
                    )
            except psycopg.Error as e:
                conn.rollback()
                if _is_lock_error(e):
                    logger.warning("[THREAD_LOCK_TIMEOUT] thread=%s (pg)", thread_id)
                    raise LockTimeout(f"lock timeout: {e}") from e
                raise SessionPersistenceError(str(e)) from e

            token = _lock_conn.set(conn)
            try:
                yield
            except BaseException:
                conn.rollback()
                raise
            else:
                try:
                    conn.commit()
                except psycopg.Error as e:
                    logger.error("[SESSION] pg commit failed thread=%s: %s", thread_id, e)
                    raise SessionPersistenceError(str(e)) from e
            finally:
                _lock_conn.reset(token)
        finally:
            conn.close()
