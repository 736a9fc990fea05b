# salesflow/llm_extraction.py
"""
Seconde passe d'extraction assistée par LLM (après la réponse).
Rattrape les faits formulés hors des motifs fixes. JSON strict, le déterministe garde la main :
les candidats passent par le même merge (nom protégé, validateurs) et la décision d'avance
n'est appliquée que si rien n'a bougé avant la réponse.
Toute erreur => None (jamais d'exception vers l'orchestrateur).
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence

from salesflow import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LLMExtraction:
    """Résultat strict de la seconde passe."""
    extracted: Dict[str, str] = field(default_factory=dict)
    advance: bool = True
    reason: str = ""  # debug uniquement (jamais loggé en entier)


SYSTEM_PROMPT = """You are a strict information-extraction module for a sales chat.
Return ONLY valid JSON on a single line. No extra text. No markdown. No code blocks.
You never invent facts: extract only what the USER explicitly said."""

USER_PROMPT_TEMPLATE = """Analise esta conversa e extraia informações ditas pelo usuário.

MENSAGEM DO USUÁRIO: "{user_message}"
RESPOSTA DO AGENTE: "{assistant_reply}"
ESTÁGIO ATUAL: {stage_name}
VARIÁVEIS JÁ COLETADAS: {existing}
VARIÁVEIS OBRIGATÓRIAS DO ESTÁGIO: {required}

Regras:
- Use estes nomes: name, email, phone, area, challenge, data_reuniao (DD/MM), horario_reuniao (H:MM).
- Para área/nicho de atuação use "area"; para desafios/dores use "challenge".
- Não repita variáveis já coletadas.
- advance=true somente se o usuário respondeu o que o estágio precisa.

{{"extracted": {{"variavel": "valor"}}, "advance": true, "reason": "max 12 palavras"}}

Return ONLY JSON. No text before or after."""


class ExtractionClient(Protocol):
    """Interface injectable pour le client LLM d'extraction."""

    def complete(self, system: str, user: str, timeout_ms: int) -> str:
        ...


class StubExtractionClient:
    """Stub pour tests : retourne une chaîne fixe (ou lève si non configuré)."""

    def __init__(self, fixed_response: Optional[str] = None):
        self.fixed_response = fixed_response
        self.calls = 0

    def complete(self, system: str, user: str, timeout_ms: int) -> str:
        self.calls += 1
        if self.fixed_response is None:
            raise NotImplementedError("LLM extraction client not configured")
        return self.fixed_response


class AnthropicExtractionClient:
    """Client Anthropic (Claude) pour la seconde passe. Conforme à ExtractionClient."""

    def __init__(self, api_key: str, model: str = config.LLM_PROVIDER_MODEL):
        self._api_key = api_key
        self._model = model

    def complete(self, system: str, user: str, timeout_ms: int) -> str:
        import anthropic

        client = anthropic.Anthropic(api_key=self._api_key)
        timeout_sec = timeout_ms / 1000.0 if timeout_ms else 30.0
        try:
            msg = client.messages.create(
                model=self._model,
                max_tokens=400,
                temperature=0.1,
                system=system,
                messages=[{"role": "user", "content": user}],
                timeout=timeout_sec,
            )
        except anthropic.APITimeoutError as e:
            raise TimeoutError from e
        out = ""
        for block in getattr(msg, "content", []):
            if getattr(block, "type", None) == "text":
                out += getattr(block, "text", "") or ""
        return out.strip()


def get_default_extraction_client() -> Optional[ExtractionClient]:
    """Client Anthropic dès que ANTHROPIC_API_KEY est défini (sauf LLM_EXTRACTION_ENABLED=false), sinon None."""
    if not config.LLM_EXTRACTION_ENABLED:
        return None
    api_key = os.getenv("ANTHROPIC_API_KEY", "").strip()
    if not api_key:
        return None
    return AnthropicExtractionClient(api_key=api_key)


def _looks_like_pure_json(text: str) -> bool:
    """JSON strict : une seule ligne, { au début, } à la fin. Rejette markdown et pretty-print."""
    if not text:
        return False
    s = text.strip()
    if "\n" in s or "\r" in s or "\t" in s:
        return False
    if len(s) < 2 or s[0] != "{" or s[-1] != "}":
        return False
    return "```" not in s


def _validate_extraction(data: Any) -> Optional[LLMExtraction]:
    """extracted: dict str -> str|nombre ; advance: bool (optionnel) ; reason: str (optionnel)."""
    if not isinstance(data, dict):
        return None
    extracted = data.get("extracted", {})
    if not isinstance(extracted, dict):
        return None
    clean: Dict[str, str] = {}
    for key, value in extracted.items():
        if not isinstance(key, str) or value is None or isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            value = str(value)
        if not isinstance(value, str):
            continue
        if value.strip():
            clean[key] = value.strip()
    advance = data.get("advance", True)
    if not isinstance(advance, bool):
        return None
    reason = data.get("reason", "")
    if not isinstance(reason, str):
        reason = ""
    return LLMExtraction(extracted=clean, advance=advance, reason=reason[:80])


def _truncate(text: str) -> str:
    return (text or "")[: config.LLM_EXTRACTION_MAX_TEXT_LEN].replace('"', "'")


def llm_extract(
    client: Optional[ExtractionClient],
    user_message: str,
    assistant_reply: str,
    stage_name: str,
    existing: Mapping[str, Any],
    required: Sequence[str],
    timeout_ms: Optional[int] = None,
) -> Optional[LLMExtraction]:
    """Appelle le LLM et valide strictement. None si désactivé, erreur, timeout ou JSON invalide."""
    if client is None:
        return None
    user = USER_PROMPT_TEMPLATE.format(
        user_message=_truncate(user_message),
        assistant_reply=_truncate(assistant_reply),
        stage_name=stage_name,
        existing=json.dumps(dict(existing), ensure_ascii=False, sort_keys=True, default=str),
        required=json.dumps(list(required), ensure_ascii=False),
    )
    try:
        raw = client.complete(SYSTEM_PROMPT, user, timeout_ms or config.LLM_EXTRACTION_TIMEOUT_MS)
    except TimeoutError:
        logger.warning("llm_extraction_timeout")
        return None
    except Exception as e:
        logger.warning("llm_extraction_error: %s", type(e).__name__)
        return None
    if not _looks_like_pure_json(raw or ""):
        logger.warning("llm_extraction_invalid_json", extra={"preview_len": len(raw or "")})
        return None
    try:
        data = json.loads(raw.strip())
    except json.JSONDecodeError:
        logger.warning("llm_extraction_invalid_json")
        return None
    result = _validate_extraction(data)
    if result is None:
        logger.warning("llm_extraction_validation_rejected")
    return result
