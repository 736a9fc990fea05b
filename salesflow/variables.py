# salesflow/variables.py
"""
Variables de session typées + politique de merge.

- Champs connus (name, email, data_reuniao, ...) + sac "extras" pour les clés métier libres.
- Marqueurs réservés au moteur (meetingCreated, buyingIntent, eventId, eventLink) :
  jamais écrits depuis un extracteur.
- Merge : un nom existant ne change JAMAIS ; les autres clés ne remplissent qu'un slot vide ;
  toute valeur validable passe par son validateur (rejet loggé, jamais stocké).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from salesflow.validators import VALIDATORS, validate_name

logger = logging.getLogger(__name__)

# Clé ouverte -> attribut du dataclass
_FIELD_BY_KEY = {
    "name": "name",
    "email": "email",
    "phone": "phone",
    "area": "area",
    "challenge": "challenge",
    "data_reuniao": "data_reuniao",
    "horario_reuniao": "horario_reuniao",
    "handoff_reason": "handoff_reason",
    "meetingCreated": "meeting_created",
    "buyingIntent": "buying_intent",
    "eventId": "event_id",
    "eventLink": "event_link",
}

MARKER_KEYS = frozenset({"meetingCreated", "buyingIntent", "eventId", "eventLink"})

# Synonymes produits par des extracteurs amont (LLM, anciens stages) -> nom canonique
SYNONYMS = {
    "nome": "name",
    "e-mail": "email",
    "mail": "email",
    "telefone": "phone",
    "celular": "phone",
    "whatsapp": "phone",
    "nicho": "area",
    "segmento": "area",
    "setor": "area",
    "desafio": "challenge",
    "dor": "challenge",
    "problema": "challenge",
    "hora_agendamento": "horario_reuniao",
    "horario_agendamento": "horario_reuniao",
    "hora": "horario_reuniao",
    "horario": "horario_reuniao",
    "data_agendamento": "data_reuniao",
    "data": "data_reuniao",
    "motivo_transbordo": "handoff_reason",
}


def canonical_key(key: str) -> str:
    k = (key or "").strip()
    return SYNONYMS.get(k.lower(), k)


def canonicalize_keys(candidates: Mapping[str, Any]) -> Dict[str, Any]:
    """Renomme les synonymes. Une clé canonique déjà présente dans la même map n'est jamais écrasée."""
    out: Dict[str, Any] = {}
    for key, value in candidates.items():
        if canonical_key(key) == key:
            out[key] = value
    for key, value in candidates.items():
        canon = canonical_key(key)
        if canon != key and canon not in out:
            out[canon] = value
    return out


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass
class SessionVariables:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    area: Optional[str] = None
    challenge: Optional[str] = None
    data_reuniao: Optional[str] = None
    horario_reuniao: Optional[str] = None
    handoff_reason: Optional[str] = None
    # Marqueurs moteur
    meeting_created: bool = False
    buying_intent: bool = False
    event_id: Optional[str] = None
    event_link: Optional[str] = None
    extras: Dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> Any:
        key = canonical_key(key)
        attr = _FIELD_BY_KEY.get(key)
        if attr is not None:
            return getattr(self, attr)
        return self.extras.get(key)

    def is_set(self, key: str) -> bool:
        value = self.get(key)
        if isinstance(value, bool):
            return value
        return not _is_empty(value)

    def set(self, key: str, value: Any) -> None:
        key = canonical_key(key)
        attr = _FIELD_BY_KEY.get(key)
        if attr is not None:
            setattr(self, attr, value)
        else:
            self.extras[key] = value

    def has_valid_name(self) -> bool:
        return bool(self.name) and validate_name(self.name).valid

    def missing(self, required: Sequence[str]) -> List[str]:
        """Variables requises encore vides (noms canoniques, ordre conservé)."""
        return [canonical_key(k) for k in required if not self.is_set(k)]

    # Écritures réservées au moteur
    def mark_buying_intent(self) -> None:
        self.buying_intent = True

    def mark_meeting_created(self, event_id: Optional[str], event_link: Optional[str]) -> None:
        self.meeting_created = True
        self.event_id = event_id
        self.event_link = event_link

    def clear_meeting_slot(self) -> None:
        """Créneau inutilisable (passé ou impossible) : libère data/horário pour une nouvelle proposition."""
        self.data_reuniao = None
        self.horario_reuniao = None

    def to_dict(self) -> Dict[str, Any]:
        """Vue ouverte (clés publiques). Les valeurs vides et marqueurs non posés sont omis."""
        out: Dict[str, Any] = {}
        for key, attr in _FIELD_BY_KEY.items():
            value = getattr(self, attr)
            if value is False or _is_empty(value):
                continue
            out[key] = value
        for key, value in self.extras.items():
            if not _is_empty(value):
                out[key] = value
        return out

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SessionVariables":
        v = cls()
        for key, value in canonicalize_keys(data or {}).items():
            if key in ("meetingCreated", "buyingIntent"):
                v.set(key, value is True or str(value).lower() in ("true", "1", "yes"))
            else:
                v.set(key, value)
        return v

    def copy(self) -> "SessionVariables":
        kwargs = {f.name: getattr(self, f.name) for f in fields(self)}
        kwargs["extras"] = dict(self.extras)
        return SessionVariables(**kwargs)


@dataclass
class MergeResult:
    variables: SessionVariables
    applied: Dict[str, str] = field(default_factory=dict)
    rejected: List[Tuple[str, str]] = field(default_factory=list)


def merge_variables(
    existing: SessionVariables,
    candidates: Mapping[str, Any],
    source: str = "deterministic",
) -> MergeResult:
    """
    Combine variables existantes + candidats. Ne modifie pas `existing` (retourne une copie).
    Règles (dans l'ordre) : clé réservée → rejet ; nom déjà connu → rejet ;
    slot déjà rempli → rejet ; validateur KO → rejet ; sinon écrit la forme normalisée.
    """
    merged = existing.copy()
    result = MergeResult(variables=merged)

    for key, raw in canonicalize_keys(candidates).items():
        if _is_empty(raw) or isinstance(raw, (dict, list)):
            continue
        value = str(raw).strip()

        if key in MARKER_KEYS:
            result.rejected.append((key, "reserved"))
            continue
        if key == "name" and merged.is_set("name"):
            result.rejected.append((key, "name_protected"))
            continue
        if merged.is_set(key):
            result.rejected.append((key, "already_set"))
            continue

        validator = VALIDATORS.get(key)
        if validator is not None:
            check = validator(value)
            if not check.valid:
                result.rejected.append((key, check.reason or "invalid"))
                continue
            value = check.normalized or value

        merged.set(key, value)
        result.applied[key] = value

    for key, reason in result.rejected:
        logger.debug("[MERGE] source=%s discarded key=%s reason=%s", source, key, reason)
    if result.applied:
        logger.info("[MERGE] source=%s applied=%s", source, sorted(result.applied))
    return result
