# salesflow/agents.py
"""Profil d'agent (persona, ton, propriétaire) : lecture seule pour le moteur."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentProfile:
    agent_id: str
    name: str = "Assistente"
    display_name: Optional[str] = None
    owner_id: Optional[str] = None  # utilisateur dont le calendrier est utilisé
    company_profile: str = ""
    tone: str = "amigável"
    personality: str = "profissional"
    language: str = "pt-BR"
    use_emojis: bool = False

    @property
    def label(self) -> str:
        return self.display_name or self.name


class AgentDirectory:
    """Registre en mémoire ; un agent inconnu reçoit un profil par défaut."""

    def __init__(self, profiles: Optional[Dict[str, AgentProfile]] = None) -> None:
        self._profiles: Dict[str, AgentProfile] = dict(profiles or {})

    def get(self, agent_id: str) -> AgentProfile:
        return self._profiles.get(agent_id) or AgentProfile(agent_id=agent_id)


def load_agents_file(path: str) -> AgentDirectory:
    """Charge un JSON {"agent_id": {"name": ..., "owner_id": ..., ...}} ; fichier absent => registre vide."""
    p = Path(path)
    if not p.exists():
        return AgentDirectory()
    raw = json.loads(p.read_text(encoding="utf-8"))
    return AgentDirectory({
        agent_id: AgentProfile(agent_id=agent_id, **fields_)
        for agent_id, fields_ in raw.items()
    })
