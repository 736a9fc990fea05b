# salesflow/validators.py
"""
Validateurs purs par type de variable (name, email, time, date).
Chaque validateur retourne un ValidationResult : valid, reason (si rejet), normalized (si accepté).
Aucune dépendance : utilisable par l'extraction, le merge et les tests.
"""
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from salesflow import config


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[str] = None
    normalized: Optional[str] = None


def _ok(normalized: str) -> ValidationResult:
    return ValidationResult(valid=True, normalized=normalized)


def _reject(reason: str) -> ValidationResult:
    return ValidationResult(valid=False, reason=reason)


def normalize_text(text: str) -> str:
    """Décomposition NFD, suppression des accents, minuscules, trim. 'Às 16' -> 'as 16'."""
    decomposed = unicodedata.normalize("NFD", text or "")
    stripped = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    return stripped.lower().strip()


# ----------------------------
# Name
# ----------------------------

# Mots jamais acceptés comme prénom (comparés après normalize_text)
BLOCKED_AS_NAME = frozenset({
    # jours
    "segunda", "terca", "quarta", "quinta", "sexta", "sabado", "domingo",
    "segunda-feira", "terca-feira", "quarta-feira", "quinta-feira", "sexta-feira",
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    # moments
    "hoje", "amanha", "manha", "tarde", "noite",
    "today", "tomorrow", "morning", "afternoon", "evening", "tonight",
    # confirmations
    "sim", "nao", "ok", "okay", "certo", "beleza", "blz", "fechado", "combinado",
    "perfeito", "otimo", "claro", "pode", "yes", "no", "yeah", "yep", "sure", "fine",
    # salutations
    "oi", "ola", "hi", "hello", "hey",
    # remplissage
    "as", "at", "hora", "horas", "dia", "dias", "ser", "que", "para", "com", "esta",
    "isso", "day", "days", "hour", "hours",
})

_TIME_LIKE_RE = re.compile(r"^(?:as?|at)\s*\d|^\d{1,2}[h:]\d{0,2}$")
# Lettres uniquement, mots séparés par espace, apostrophe ou trait d'union simple
_NAME_RE = re.compile(r"^[^\W\d_]+(?:[ '-][^\W\d_]+)*$")
# "Oi!", "Gastão." : ponctuation finale de fin de phrase retirée avant contrôle
_TRAILING_PUNCT = "!.¡"


def _strip_trailing_punct(text: str) -> str:
    return (text or "").strip().rstrip(_TRAILING_PUNCT).strip()


def is_time_like(text: str) -> bool:
    return bool(_TIME_LIKE_RE.search(normalize_text(text)))


def is_reserved_word(text: str) -> bool:
    return normalize_text(_strip_trailing_punct(text)) in BLOCKED_AS_NAME


def _capitalize_name(value: str) -> str:
    return " ".join(w[:1].upper() + w[1:] for w in value.split())


def validate_name(value: str) -> ValidationResult:
    raw = _strip_trailing_punct(value)
    norm = normalize_text(raw)
    if len(norm) < 2:
        return _reject("too_short")
    if norm in BLOCKED_AS_NAME:
        return _reject("reserved_word")
    if norm.isdigit():
        return _reject("number")
    if "@" in norm:
        return _reject("email")
    if _TIME_LIKE_RE.search(norm):
        return _reject("time_like")
    if not _NAME_RE.match(raw):
        return _reject("illegal_chars")
    return _ok(_capitalize_name(raw))


# ----------------------------
# Email
# ----------------------------

EMAIL_RE = re.compile(r"^[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}$", re.IGNORECASE)


def validate_email(value: str) -> ValidationResult:
    v = (value or "").strip()
    if not v:
        return _reject("empty")
    if not EMAIL_RE.match(v):
        return _reject("bad_format")
    return _ok(v.lower())


# ----------------------------
# Time (politique horaires commerciaux)
# ----------------------------

_TIME_PATTERNS = (
    re.compile(r"^(?:as?|at)\s*(\d{1,2})(?:\s*[:h]\s*(\d{2}))?\s*h?$"),  # as 16, as 16h, at 4:30
    re.compile(r"^(\d{1,2}):(\d{2})$"),                                  # 16:00
    re.compile(r"^(\d{1,2})h(\d{2})?$"),                                 # 16h, 16h30
    re.compile(r"^(\d{1,2})$"),                                          # 16
)


def validate_time(value: str) -> ValidationResult:
    v = normalize_text(value)
    if not v:
        return _reject("empty")
    for pattern in _TIME_PATTERNS:
        m = pattern.match(v)
        if not m:
            continue
        hour = int(m.group(1))
        minute = int(m.group(2)) if m.lastindex and m.lastindex >= 2 and m.group(2) else 0
        if minute > 59:
            return _reject("bad_minutes")
        if hour < config.BUSINESS_HOUR_MIN or hour > config.BUSINESS_HOUR_MAX:
            return _reject("outside_business_hours")
        return _ok(f"{hour}:{minute:02d}")
    return _reject("bad_format")


# ----------------------------
# Date
# ----------------------------

# D/M ou D-M uniquement : une année n'est pas acceptée (elle serait ignorée)
_DATE_RE = re.compile(r"^(\d{1,2})\s*[/-]\s*(\d{1,2})$")
# 29/02 accepté (année inconnue ici)
_DAYS_IN_MONTH = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def validate_date(value: str) -> ValidationResult:
    v = (value or "").strip()
    m = _DATE_RE.match(v)
    if not m:
        return _reject("bad_format")
    day, month = int(m.group(1)), int(m.group(2))
    if not 1 <= day <= 31:
        return _reject("bad_day")
    if not 1 <= month <= 12:
        return _reject("bad_month")
    if day > _DAYS_IN_MONTH[month - 1]:
        return _reject("bad_day")
    return _ok(f"{day:02d}/{month:02d}")


VALIDATORS: Dict[str, Callable[[str], ValidationResult]] = {
    "name": validate_name,
    "email": validate_email,
    "horario_reuniao": validate_time,
    "data_reuniao": validate_date,
}
