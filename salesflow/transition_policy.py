# salesflow/transition_policy.py
"""
Politique de transition entre étapes (machine à états, états = ids d'étapes ordonnés).

Avant la réponse, par priorité :
  1. demande explicite d'humain      → étape de type handoff (raison enregistrée)
  2. intention d'achat + nom connu   → étape de type schedule (buyingIntent) ;
     intention sans nom              → on reste, needs_basic_info pour le prompt
  3. requis de l'étape tous présents → étape d'order suivant (requis vide = jamais automatique)
  4. sinon                           → on reste

Après la réponse (seconde passe LLM) : avance si l'étape est complète (requis vide = complète),
seulement si rien n'a bougé avant la réponse.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from salesflow.intent_parser import detect_buying_intent, detect_handoff
from salesflow.stages import Stage, StageType, find_by_type, next_stage
from salesflow.variables import SessionVariables

logger = logging.getLogger(__name__)

HANDOFF_REASON_USER_REQUEST = "Solicitado pelo usuário"


class TransitionKind(str, Enum):
    HANDOFF = "handoff"
    BUYING_INTENT = "buying_intent"
    LINEAR = "linear"
    POST_REPLY = "post_reply"
    MEETING_CREATED = "meeting_created"
    STAY = "stay"


@dataclass(frozen=True)
class TransitionDecision:
    kind: TransitionKind
    target: Optional[Stage] = None
    needs_basic_info: bool = False
    reason: str = ""

    @property
    def moves(self) -> bool:
        return self.target is not None


def _stay(reason: str = "", needs_basic_info: bool = False) -> TransitionDecision:
    return TransitionDecision(kind=TransitionKind.STAY, needs_basic_info=needs_basic_info, reason=reason)


def is_stage_complete(stage: Stage, variables: SessionVariables) -> bool:
    """Tous les requis non vides. Requis vide => complet."""
    return not variables.missing(stage.required_variables)


def decide_pre_response(
    current: Stage,
    stages: Sequence[Stage],
    variables: SessionVariables,
    message: str,
) -> TransitionDecision:
    """Décision avant génération de la réponse (variables = déjà mergées pour ce tour)."""
    # 1) Transbordo
    if detect_handoff(message):
        handoff = find_by_type(stages, StageType.HANDOFF)
        if handoff is not None and handoff.id != current.id:
            return TransitionDecision(
                kind=TransitionKind.HANDOFF,
                target=handoff,
                reason=HANDOFF_REASON_USER_REQUEST,
            )

    # 2) Intention d'achat
    needs_basic_info = False
    if detect_buying_intent(message) and current.type not in (StageType.SCHEDULE, StageType.HANDOFF):
        if variables.has_valid_name():
            schedule = find_by_type(stages, StageType.SCHEDULE)
            if schedule is not None:
                return TransitionDecision(
                    kind=TransitionKind.BUYING_INTENT,
                    target=schedule,
                    reason="buying_intent",
                )
        else:
            logger.info("[TRANSITION] buying intent without name: asking basic info first")
            needs_basic_info = True

    # 3) Avance linéaire
    if current.required_variables and is_stage_complete(current, variables):
        nxt = next_stage(stages, current)
        if nxt is not None:
            return TransitionDecision(
                kind=TransitionKind.LINEAR,
                target=nxt,
                needs_basic_info=needs_basic_info,
                reason="required_complete",
            )
        return _stay("terminal", needs_basic_info)

    return _stay("incomplete", needs_basic_info)


def decide_post_reply(
    current: Stage,
    stages: Sequence[Stage],
    variables: SessionVariables,
    proposed_advance: bool = True,
) -> TransitionDecision:
    """Décision de la seconde passe (après merge de ses candidats)."""
    if not proposed_advance:
        return _stay("llm_no_advance")
    if not is_stage_complete(current, variables):
        return _stay("incomplete")
    nxt = next_stage(stages, current)
    if nxt is None:
        return _stay("terminal")
    return TransitionDecision(kind=TransitionKind.POST_REPLY, target=nxt, reason="post_reply_complete")
