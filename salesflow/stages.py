# salesflow/stages.py
"""
Définition des étapes (stages) du script commercial.
Ordre total par `order` : "suivant" = order immédiatement supérieur, quel que soit le type.
Les étapes sont en lecture seule pour le moteur (sauf création du pipeline par défaut).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


class StageType(str, Enum):
    IDENTIFY = "identify"
    DIAGNOSIS = "diagnosis"
    SCHEDULE = "schedule"
    HANDOFF = "handoff"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Stage:
    id: str
    agent_id: str
    order: int
    type: StageType
    name: str
    required_variables: Tuple[str, ...] = field(default_factory=tuple)
    instructions: str = ""
    entry_condition: str = ""  # indicatif uniquement, jamais évalué

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "order": self.order,
            "type": self.type.value,
            "name": self.name,
            "required_variables": list(self.required_variables),
            "instructions": self.instructions,
            "entry_condition": self.entry_condition,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Stage":
        return cls(
            id=d["id"],
            agent_id=d["agent_id"],
            order=int(d["order"]),
            type=StageType(d.get("type") or "custom"),
            name=d.get("name") or "",
            required_variables=tuple(d.get("required_variables") or ()),
            instructions=d.get("instructions") or "",
            entry_condition=d.get("entry_condition") or "",
        )


# (slug, type, nom, requis, instructions, condition d'entrée)
_DEFAULT_PIPELINE = (
    (
        "identify", StageType.IDENTIFY, "Identificação", ("name", "area"),
        "Conhecer o lead. Pergunte nome e área de atuação. Se demonstrar interesse direto, pule para agendamento.",
        "Início",
    ),
    (
        "diagnosis", StageType.DIAGNOSIS, "Entendimento", ("challenge",),
        "Entender a dor. Pergunte o que fez ele buscar uma solução. Se demonstrar interesse, ofereça agendamento.",
        "Lead identificado",
    ),
    (
        "qualification", StageType.CUSTOM, "Qualificação", (),
        "Qualificar o lead. Pergunte UMA informação relevante sobre o contexto (volume de leads, equipe, etc).",
        "Dor identificada",
    ),
    (
        "presentation", StageType.CUSTOM, "Apresentação", (),
        "Conectar dor com solução. Mostre 1-2 benefícios e ofereça uma demonstração prática.",
        "Lead qualificado",
    ),
    (
        "schedule", StageType.SCHEDULE, "Agendamento", ("email", "data_reuniao"),
        "Agendar reunião. Peça email e ofereça datas: dia DD/MM às HH:00. Nunca sábado ou domingo.",
        "Lead interessado",
    ),
    (
        "confirmation", StageType.HANDOFF, "Confirmação", (),
        "Confirmar agendamento e encerrar. Agradeça pela conversa.",
        "Reunião agendada",
    ),
)


def default_stages(agent_id: str) -> List[Stage]:
    """Pipeline par défaut à six étapes : identify → diagnosis → qualification → presentation → schedule → confirmation."""
    return [
        Stage(
            id=f"{agent_id}:{slug}",
            agent_id=agent_id,
            order=order,
            type=stage_type,
            name=name,
            required_variables=required,
            instructions=instructions,
            entry_condition=entry,
        )
        for order, (slug, stage_type, name, required, instructions, entry) in enumerate(_DEFAULT_PIPELINE)
    ]


# ----------------------------
# Navigation
# ----------------------------

def sort_stages(stages: Sequence[Stage]) -> List[Stage]:
    return sorted(stages, key=lambda s: s.order)


def find_by_id(stages: Sequence[Stage], stage_id: Optional[str]) -> Optional[Stage]:
    for s in stages:
        if s.id == stage_id:
            return s
    return None


def find_by_type(stages: Sequence[Stage], stage_type: StageType) -> Optional[Stage]:
    """Première étape (par order) du type demandé."""
    for s in sort_stages(stages):
        if s.type == stage_type:
            return s
    return None


def next_stage(stages: Sequence[Stage], current: Stage) -> Optional[Stage]:
    """Étape d'order immédiatement supérieur, ou None si terminale."""
    later = [s for s in stages if s.order > current.order]
    return min(later, key=lambda s: s.order) if later else None


def is_terminal(stages: Sequence[Stage], current: Stage) -> bool:
    return next_stage(stages, current) is None


def position(stages: Sequence[Stage], current: Stage) -> Tuple[int, int]:
    """(index 1-based, total) pour l'affichage "[i/n]"."""
    ordered = sort_stages(stages)
    for i, s in enumerate(ordered):
        if s.id == current.id:
            return i + 1, len(ordered)
    return 0, len(ordered)
