# salesflow/session_store_sqlite.py
"""
Session store persistant avec SQLite (défaut hors Postgres).
La session complète est stockée en JSON (session_codec) ; quelques colonnes
dénormalisées pour requêtes/debug. La DB est la source de vérité : pas de cache mémoire.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import time
from typing import Optional

from salesflow import config
from salesflow.session import Session, SessionPersistenceError
from salesflow.session_codec import session_from_dict, session_to_dict

logger = logging.getLogger(__name__)


class SQLiteSessionStore:
    """Session store persistant utilisant SQLite."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Args:
            db_path: Chemin vers la base SQLite (défaut config.SESSIONS_DB_PATH)
        """
        self.db_path = db_path or config.SESSIONS_DB_PATH
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=config.SESSION_LOCK_TIMEOUT_SEC)

    def _init_db(self) -> None:
        """Crée la table sessions si elle n'existe pas."""
        conn = self._connect()
        try:
            # WAL : écritures concurrentes entre threads différents
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    thread_id TEXT PRIMARY KEY,
                    agent_id TEXT NOT NULL,
                    current_stage_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    state_json TEXT NOT NULL,
                    last_seen_at TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_sessions_agent
                ON sessions(agent_id)
            """)
            conn.commit()
        finally:
            conn.close()

    def save(self, session: Session) -> None:
        """Sauvegarde atomique (une transaction). Lève SessionPersistenceError si échec."""
        t_start = time.time()
        data = session_to_dict(session)
        try:
            conn = self._connect()
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT OR REPLACE INTO sessions (
                            thread_id, agent_id, current_stage_id, status,
                            state_json, last_seen_at, created_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            data["thread_id"], data["agent_id"], data["current_stage_id"], data["status"],
                            json.dumps(data, ensure_ascii=False), data["last_seen_at"], data["created_at"],
                        ),
                    )
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("[SESSION] sqlite save failed thread=%s: %s", session.thread_id, e)
            raise SessionPersistenceError(str(e)) from e
        logger.debug(
            "[SESSION] saved thread=%s stage=%s in %.0fms",
            session.thread_id, session.current_stage_id, (time.time() - t_start) * 1000,
        )

    def get(self, thread_id: str) -> Optional[Session]:
        """Récupère une session depuis SQLite (None si absente)."""
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT state_json FROM sessions WHERE thread_id = ?", (thread_id,)
            ).fetchone()
        finally:
            conn.close()
        if not row:
            return None
        return session_from_dict(json.loads(row[0]))
