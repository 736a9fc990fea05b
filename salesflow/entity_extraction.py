# salesflow/entity_extraction.py
"""
Extraction déterministe et conservatrice des variables d'un message utilisateur.

Les passes s'exécutent dans un ordre fixe (EXTRACTION_PASSES) et partagent un
ExtractionContext. Dates et heures passent AVANT le nom : un message lu comme
date/heure est marqué "consommé" et ne peut plus devenir un nom
("segunda" ne doit jamais devenir un prénom).

Principe : en cas de doute → ne rien proposer. Le merge décide ensuite.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Mapping, Optional, Tuple

from salesflow import config
from salesflow.validators import (
    EMAIL_RE,
    is_reserved_word,
    is_time_like,
    normalize_text,
    validate_date,
    validate_email,
    validate_name,
    validate_time,
)

logger = logging.getLogger(__name__)


@dataclass
class ExtractionContext:
    """État partagé entre les passes pour un seul message."""
    message: str
    now: datetime
    existing: Mapping[str, Optional[str]] = field(default_factory=dict)
    candidates: Dict[str, str] = field(default_factory=dict)
    consumed_as_date_or_time: bool = False

    @property
    def text(self) -> str:
        return normalize_text(self.message)

    @property
    def today(self) -> date:
        return self.now.date()

    def propose(self, key: str, value: str, consumes: bool = False) -> None:
        if key in self.candidates:
            return
        self.candidates[key] = value
        if consumes:
            self.consumed_as_date_or_time = True

    def has_value(self, key: str) -> bool:
        return bool(self.candidates.get(key)) or bool(self.existing.get(key))


@dataclass(frozen=True)
class CandidateSet:
    """Résultat éphémère d'un tour (jamais persisté)."""
    values: Dict[str, str]
    consumed_as_date_or_time: bool = False


def format_ddmm(d: date) -> str:
    return f"{d.day:02d}/{d.month:02d}"


# ----------------------------
# 1) Dates relatives
# ----------------------------

_RELATIVE_DAYS = (
    (re.compile(r"\bdepois de amanha\b|\bday after tomorrow\b"), 2),
    (re.compile(r"\bamanha\b|\btomorrow\b"), 1),
    (re.compile(r"\bhoje\b|\btoday\b"), 0),
)


# "hoje em dia" : adverbe, pas une date de réunion
_ADVERBIAL_TODAY_RE = re.compile(r"\bhoje em dia\b")


def _today_is_adverbial(ctx: ExtractionContext) -> bool:
    if _ADVERBIAL_TODAY_RE.search(ctx.text):
        return True
    # "meu desafio hoje é..." : phrase de diagnostic, pas de date
    return any(p.search(ctx.message) for p in CHALLENGE_PATTERNS + AREA_PATTERNS)


def extract_relative_date(ctx: ExtractionContext) -> None:
    text = ctx.text
    for pattern, offset in _RELATIVE_DAYS:
        if not pattern.search(text):
            continue
        if offset == 0 and _today_is_adverbial(ctx):
            logger.debug("[EXTRACT] relative_date skipped: adverbial 'hoje'")
            return
        ctx.propose("data_reuniao", format_ddmm(ctx.today + timedelta(days=offset)), consumes=True)
        return


# ----------------------------
# 2) Jours de la semaine
# ----------------------------

WEEKDAYS = {
    "segunda": 0, "terca": 1, "quarta": 2, "quinta": 3, "sexta": 4, "sabado": 5, "domingo": 6,
    "monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3, "friday": 4, "saturday": 5, "sunday": 6,
}
_WEEKDAY_RE = re.compile(r"\b(" + "|".join(WEEKDAYS) + r")(?:-feira)?\b")


def next_weekday(today: date, weekday: int) -> date:
    """Prochaine occurrence ; si c'est aujourd'hui, semaine suivante."""
    delta = (weekday - today.weekday()) % 7
    return today + timedelta(days=delta or 7)


def extract_weekday(ctx: ExtractionContext) -> None:
    if "data_reuniao" in ctx.candidates:
        return
    m = _WEEKDAY_RE.search(ctx.text)
    if not m:
        return
    target = next_weekday(ctx.today, WEEKDAYS[m.group(1)])
    ctx.propose("data_reuniao", format_ddmm(target), consumes=True)


# ----------------------------
# 3) Dates numériques
# ----------------------------

MONTHS = {
    "janeiro": 1, "fevereiro": 2, "marco": 3, "abril": 4, "maio": 5, "junho": 6,
    "julho": 7, "agosto": 8, "setembro": 9, "outubro": 10, "novembro": 11, "dezembro": 12,
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
}

# "26/10/2026" : année non supportée -> pas de date
_NUMERIC_DATE_RE = re.compile(r"\b(\d{1,2})\s*[/-]\s*(\d{1,2})\b(?!\s*[/-]\s*\d)")
_DAY_OF_MONTH_RE = re.compile(
    r"\b(?:dia|day)\s+(\d{1,2})(?!\s*[/-]\s*\d)(?:st|nd|rd|th)?(?:\s+(?:de|of)\s+([a-z]+))?\b"
)


def month_for_day(today: date, day: int) -> int:
    """Jour sans mois : mois courant, ou mois suivant si ce jour est déjà passé."""
    if day >= today.day:
        return today.month
    return today.month % 12 + 1


def extract_numeric_date(ctx: ExtractionContext) -> None:
    if "data_reuniao" in ctx.candidates:
        return
    text = ctx.text
    raw: Optional[str] = None
    m = _NUMERIC_DATE_RE.search(text)
    if m:
        raw = f"{m.group(1)}/{m.group(2)}"
    else:
        m = _DAY_OF_MONTH_RE.search(text)
        if m:
            # "dia 26 de manhã" : mot inconnu après "de" => mois déduit du jour
            day = int(m.group(1))
            month = MONTHS.get(m.group(2) or "") or month_for_day(ctx.today, day)
            raw = f"{day}/{month}"
    if raw is None:
        return
    result = validate_date(raw)
    if not result.valid:
        logger.debug("[EXTRACT] numeric_date discarded: %s (%s)", raw, result.reason)
        return
    ctx.propose("data_reuniao", result.normalized, consumes=True)


# ----------------------------
# 4) Heures
# ----------------------------

_EXPLICIT_AT_RE = re.compile(r"^(?:as?|at)\s*\d{1,2}(?:\s*[:h]\s*\d{2})?\s*h?$")
_BARE_NUMBER_RE = re.compile(r"^\d{1,2}$")

_AFTERNOON_WORDS = ("tarde", "noite", "afternoon", "evening", "night", "pm")

# (pattern, groupe période ?) : premier motif trouvé gagne
_TIME_SEARCH_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(
        r"\b(\d{1,2})(?::(\d{2}))?\s*h?\s*(?:da|de|of the|in the)?\s*"
        r"(manha|tarde|noite|morning|afternoon|evening|night)\b"
    ),
    re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b"),
    re.compile(r"\b(\d{1,2}):(\d{2})\b"),
    re.compile(r"\b(\d{1,2})h(\d{2})?\b"),
    re.compile(r"\b(?:as|at|around|por volta das|pelas)\s+(\d{1,2})(?::(\d{2}))?\b"),
)


def _shift_hour(hour: int, period: Optional[str]) -> int:
    if period in _AFTERNOON_WORDS and hour < 12:
        return hour + 12
    if period == "am" and hour == 12:
        return 0
    return hour


def _propose_time(ctx: ExtractionContext, raw: str, source: str) -> bool:
    result = validate_time(raw)
    if not result.valid:
        logger.debug("[EXTRACT] time discarded (%s): %r %s", source, raw, result.reason)
        return False
    ctx.propose("horario_reuniao", result.normalized, consumes=True)
    return True


def extract_time(ctx: ExtractionContext) -> None:
    text = ctx.text
    if _EXPLICIT_AT_RE.match(text):
        _propose_time(ctx, text, "explicit")
        return

    for pattern in _TIME_SEARCH_PATTERNS:
        m = pattern.search(text)
        if not m:
            continue
        groups = m.groups()
        hour = int(groups[0])
        minute = groups[1] if len(groups) > 1 and groups[1] and groups[1].isdigit() else "00"
        period = groups[2] if len(groups) > 2 else None
        hour = _shift_hour(hour, period)
        _propose_time(ctx, f"{hour}:{minute}", "pattern")
        return

    if _BARE_NUMBER_RE.match(text):
        _disambiguate_bare_number(ctx, int(text))


def _disambiguate_bare_number(ctx: ExtractionContext, n: int) -> None:
    """
    Nombre seul : [6,22] → heure ; [1,31] → jour du mois (si date pas encore connue).
    Les deux peuvent s'appliquer. Un jour déjà passé désigne le mois suivant.
    """
    if config.BUSINESS_HOUR_MIN <= n <= config.BUSINESS_HOUR_MAX:
        ctx.propose("horario_reuniao", f"{n}:00", consumes=True)
    if 1 <= n <= 31 and not ctx.has_value("data_reuniao"):
        result = validate_date(f"{n}/{month_for_day(ctx.today, n)}")
        if result.valid:
            ctx.propose("data_reuniao", result.normalized, consumes=True)
    if not ctx.consumed_as_date_or_time:
        logger.debug("[EXTRACT] bare number %s discarded: neither hour nor day", n)


# ----------------------------
# 5) Domaine d'activité (ne consomme pas)
# ----------------------------

_BUSINESS_NOUNS = (
    r"(?:loja|cl[ií]nica|empresa|consult[oó]rio|escrit[oó]rio|ag[eê]ncia|restaurante|academia|"
    r"neg[oó]cio|store|shop|clinic|company|business|agency|restaurant|gym|office|firm|practice)"
)

AREA_PATTERNS = [
    re.compile(
        r"(?:meu neg[oó]cio [eé]|minha empresa [eé]|meu nicho [eé]|meu segmento [eé]|minha [aá]rea [eé])"
        r"\s*:?\s*(?:uma?\s+)?(.+)",
        re.IGNORECASE,
    ),
    re.compile(r"(?:trabalho com|trabalho em|trabalho no ramo de|atuo com|atuo em|atuo no ramo de)\s+(.+)", re.IGNORECASE),
    re.compile(r"(?:tenho|sou dono de|sou dona de)\s+(?:uma?\s+)?(" + _BUSINESS_NOUNS + r"\b.*)", re.IGNORECASE),
    re.compile(r"(?:[aá]rea|nicho|segmento|setor)\s*:\s*(.+)", re.IGNORECASE),
    re.compile(r"\b(?:my business is|my company is|my niche is|i work in|i work with)\s+(?:an?\s+|the\s+)?(.+)", re.IGNORECASE),
    re.compile(r"\b(?:i run|i own|i manage)\s+(?:an?\s+|the\s+|my own\s+)?(.+)", re.IGNORECASE),
    re.compile(r"\bi have\s+(?:an?\s+)?(\w+\s+" + _BUSINESS_NOUNS + r"\b.*|" + _BUSINESS_NOUNS + r"\b.*)", re.IGNORECASE),
]


def _clean_phrase(value: str) -> str:
    return value.strip().rstrip(".!;,").strip()


def extract_area(ctx: ExtractionContext) -> None:
    for pattern in AREA_PATTERNS:
        m = pattern.search(ctx.message)
        if m:
            value = _clean_phrase(m.group(1))
            if value:
                ctx.propose("area", value)
            return


# ----------------------------
# 6) Défi / douleur (ne consomme pas)
# ----------------------------

CHALLENGE_PATTERNS = [
    re.compile(
        r"(?:meu (?:maior |principal )?(?:desafio|problema) (?:[eé]|hoje [eé])|minha (?:maior |principal )?dor [eé])"
        r"\s*:?\s*(?:o |a )?(.+)",
        re.IGNORECASE,
    ),
    re.compile(
        r"\bmy (?:biggest |main )?(?:challenge|problem|pain point|pain) is\s+(?:the\s+)?(.+)",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:i struggle with|i'm struggling with|we struggle with)\s+(.+)", re.IGNORECASE),
]


def extract_challenge(ctx: ExtractionContext) -> None:
    for pattern in CHALLENGE_PATTERNS:
        m = pattern.search(ctx.message)
        if m:
            value = _clean_phrase(m.group(1))
            if value:
                ctx.propose("challenge", value)
            return


# ----------------------------
# 7) Nom (porte conservatrice)
# ----------------------------

def _name_gate_reason(ctx: ExtractionContext) -> Optional[str]:
    """Raison de refus, ou None si le message peut être lu comme un nom."""
    raw = ctx.message.strip()
    if ctx.consumed_as_date_or_time:
        return "consumed_as_date_or_time"
    existing = ctx.existing.get("name")
    if existing and validate_name(existing).valid:
        return "name_already_known"
    if not raw or len(raw) >= config.NAME_MAX_MESSAGE_LEN:
        return "length"
    if "?" in raw:
        return "question"
    if any(c.isspace() for c in raw):
        return "whitespace"
    if "@" in raw or EMAIL_RE.match(raw):
        return "email"
    if is_reserved_word(raw):
        return "reserved_word"
    if raw.isdigit():
        return "number"
    if is_time_like(raw):
        return "time_like"
    return None


def extract_name(ctx: ExtractionContext) -> None:
    reason = _name_gate_reason(ctx)
    if reason is not None:
        if reason not in ("length", "whitespace", "name_already_known"):
            logger.debug("[EXTRACT] name skipped: %s", reason)
        return
    result = validate_name(ctx.message)
    if not result.valid:
        logger.debug("[EXTRACT] name discarded: %s", result.reason)
        return
    ctx.propose("name", result.normalized)


# ----------------------------
# 8) Email / 9) Téléphone
# ----------------------------

_EMAIL_SCAN_RE = re.compile(r"[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}", re.IGNORECASE)
_PHONE_RE = re.compile(r"(?:\+?55\s*)?(?:\(?\d{2}\)?\s*)?\d{4,5}[-.\s]?\d{4}")


def extract_email(ctx: ExtractionContext) -> None:
    m = _EMAIL_SCAN_RE.search(ctx.message)
    if not m:
        return
    result = validate_email(m.group(0))
    if result.valid:
        ctx.propose("email", result.normalized)


def extract_phone(ctx: ExtractionContext) -> None:
    text = _EMAIL_SCAN_RE.sub(" ", ctx.message)
    m = _PHONE_RE.search(text)
    if not m:
        return
    digits = re.sub(r"\D", "", m.group(0))
    if len(digits) < 10:
        return
    ctx.propose("phone", digits)


Extractor = Callable[[ExtractionContext], None]

# Ordre = contrat. Ne pas réordonner sans revoir les tests d'exclusivité date/heure vs nom.
EXTRACTION_PASSES: Tuple[Tuple[str, Extractor], ...] = (
    ("relative_date", extract_relative_date),
    ("weekday", extract_weekday),
    ("numeric_date", extract_numeric_date),
    ("time", extract_time),
    ("area", extract_area),
    ("challenge", extract_challenge),
    ("name", extract_name),
    ("email", extract_email),
    ("phone", extract_phone),
)


def extract_candidates(
    message: str,
    existing: Optional[Mapping[str, Optional[str]]] = None,
    now: Optional[datetime] = None,
) -> CandidateSet:
    """Exécute toutes les passes sur un message. Pure si `now` est fourni."""
    ctx = ExtractionContext(
        message=message or "",
        now=now or config.now_local(),
        existing=existing or {},
    )
    for _name, extractor in EXTRACTION_PASSES:
        extractor(ctx)
    if ctx.candidates:
        logger.debug(
            "[EXTRACT] keys=%s consumed=%s",
            sorted(ctx.candidates),
            ctx.consumed_as_date_or_time,
        )
    return CandidateSet(values=dict(ctx.candidates), consumed_as_date_or_time=ctx.consumed_as_date_or_time)
