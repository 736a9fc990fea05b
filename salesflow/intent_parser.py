# salesflow/intent_parser.py
"""
Détection déterministe par lexique : transbordo humain et intention d'achat.
Fonctions pures, comparaison sur texte normalisé (sans accents, minuscules).
Lexiques dédiés ici (le wording des prompts n'est jamais une source de matching).
"""
from __future__ import annotations

from typing import Iterable

from salesflow.validators import normalize_text

# ---------------------------------------------------------------------------
# Lexiques
# ---------------------------------------------------------------------------

_HANDOFF_LEXICON = (
    "falar com humano", "falar com um humano", "falar com uma pessoa", "falar com alguem",
    "atendente", "pessoa real", "transferir", "suporte humano",
    "talk to a person", "talk to a human", "talk to someone", "speak to a person",
    "speak to a human", "speak with a person", "speak with a human", "real person", "human agent",
)

_BUYING_INTENT_LEXICON = (
    # agendar / marcar direto
    "quero agendar", "quero marcar", "so marcar", "so agendar",
    "queria marcar", "queria agendar", "gostaria de marcar", "gostaria de agendar",
    "posso agendar", "posso marcar", "podemos marcar", "vamos marcar", "vamos agendar",
    "marcar uma reuniao", "marcar uma chamada", "marcar uma call",
    "agendar uma reuniao", "agendar uma chamada", "agendar uma call",
    "marcar apresentacao", "marcar uma apresentacao",
    # interesse direto
    "quero contratar", "quero conhecer", "quero ver na pratica", "quero uma demonstracao",
    "me interessou", "tenho interesse", "estou interessado", "estou interessada",
    # horários
    "quando podemos", "qual horario", "tem horario", "horario disponivel",
    # preço
    "quero saber mais sobre preco", "quanto custa", "qual o valor",
    # urgência
    "preciso urgente", "o mais rapido possivel", "proxima semana",
    # en
    "schedule a meeting", "book a meeting", "schedule a call", "book a call",
    "want to schedule", "want to book", "set up a meeting", "book a demo", "schedule a demo",
    "i'm interested", "i am interested", "how much does it cost", "as soon as possible",
)


def _contains_any(text: str, lexicon: Iterable[str]) -> bool:
    t = normalize_text(text)
    if not t:
        return False
    return any(kw in t for kw in lexicon)


def detect_handoff(message: str) -> bool:
    """True si l'utilisateur demande explicitement un humain."""
    return _contains_any(message, _HANDOFF_LEXICON)


def detect_buying_intent(message: str) -> bool:
    """True si le message exprime une volonté d'avancer directement vers le RDV."""
    return _contains_any(message, _BUYING_INTENT_LEXICON)
