# salesflow/stage_store.py
"""
Stage Definition Store : étapes par agent (loadStages / saveStages).
Si un agent n'a aucune étape, le pipeline par défaut est créé et persisté avant de continuer.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from typing import Dict, List, Optional, Protocol, Sequence

from salesflow import config
from salesflow.stages import Stage, default_stages, sort_stages

logger = logging.getLogger(__name__)


class StageStore(Protocol):
    def load_stages(self, agent_id: str) -> List[Stage]:
        ...

    def save_stages(self, agent_id: str, stages: Sequence[Stage]) -> None:
        ...


class InMemoryStageStore:
    def __init__(self, stages_by_agent: Optional[Dict[str, Sequence[Stage]]] = None) -> None:
        self._stages: Dict[str, List[Stage]] = {
            agent_id: list(stages) for agent_id, stages in (stages_by_agent or {}).items()
        }

    def load_stages(self, agent_id: str) -> List[Stage]:
        return sort_stages(self._stages.get(agent_id, []))

    def save_stages(self, agent_id: str, stages: Sequence[Stage]) -> None:
        self._stages[agent_id] = list(stages)


class SQLiteStageStore:
    """Étapes persistées dans la même base SQLite que les sessions."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or config.SESSIONS_DB_PATH
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS agent_stages (
                    id TEXT PRIMARY KEY,
                    agent_id TEXT NOT NULL,
                    stage_order INTEGER NOT NULL,
                    stage_json TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_agent_stages_agent ON agent_stages(agent_id)")
            conn.commit()
        finally:
            conn.close()

    def load_stages(self, agent_id: str) -> List[Stage]:
        conn = sqlite3.connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT stage_json FROM agent_stages WHERE agent_id = ? ORDER BY stage_order",
                (agent_id,),
            ).fetchall()
        finally:
            conn.close()
        return [Stage.from_dict(json.loads(r[0])) for r in rows]

    def save_stages(self, agent_id: str, stages: Sequence[Stage]) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            with conn:
                conn.execute("DELETE FROM agent_stages WHERE agent_id = ?", (agent_id,))
                conn.executemany(
                    "INSERT INTO agent_stages (id, agent_id, stage_order, stage_json) VALUES (?, ?, ?, ?)",
                    [
                        (s.id, agent_id, s.order, json.dumps(s.to_dict(), ensure_ascii=False))
                        for s in stages
                    ],
                )
        finally:
            conn.close()


def ensure_stages(store: StageStore, agent_id: str) -> List[Stage]:
    """Étapes de l'agent triées par order ; crée + persiste le pipeline par défaut si vide."""
    stages = store.load_stages(agent_id)
    if stages:
        return sort_stages(stages)
    # Idempotent : ids déterministes, save_stages remplace l'ensemble
    stages = default_stages(agent_id)
    store.save_stages(agent_id, stages)
    logger.info("[STAGES] default pipeline created agent=%s (%d stages)", agent_id, len(stages))
    return sort_stages(stages)
