# salesflow/llm_client.py
"""
Capacité generateReply : un prompt système + le message utilisateur -> texte.
Client injectable (Protocol) ; Anthropic en production, stub en tests/dev.
Toute erreur (timeout inclus) remonte en LLMReplyError : l'orchestrateur la convertit en message de repli.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

from salesflow import config

logger = logging.getLogger(__name__)


class LLMReplyError(Exception):
    """Échec de génération (API, timeout, réponse vide)."""


@dataclass(frozen=True)
class ModelParams:
    model: str = config.LLM_PROVIDER_MODEL
    temperature: float = config.LLM_TEMPERATURE
    max_tokens: int = config.LLM_MAX_TOKENS
    timeout_sec: float = config.LLM_REPLY_TIMEOUT_SEC


class ReplyClient(Protocol):
    """Interface injectable pour la génération de réponse."""

    def generate_reply(self, system_prompt: str, user_message: str, params: ModelParams) -> str:
        ...


class StubReplyClient:
    """Stub pour tests : réponse fixe, trace des appels. Sans réponse fixe => non configuré."""

    def __init__(self, fixed_response: Optional[str] = None):
        self.fixed_response = fixed_response
        self.calls: List[Tuple[str, str]] = []

    def generate_reply(self, system_prompt: str, user_message: str, params: ModelParams) -> str:
        self.calls.append((system_prompt, user_message))
        if self.fixed_response is None:
            raise LLMReplyError("LLM client not configured")
        return self.fixed_response


class AnthropicReplyClient:
    """Client Anthropic (Claude). Conforme à ReplyClient."""

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = (api_key or os.getenv("ANTHROPIC_API_KEY", "")).strip()
        if not self._api_key:
            raise ValueError("ANTHROPIC_API_KEY required for AnthropicReplyClient")
        self._client = None

    def _get_client(self):
        if self._client is None:
            from anthropic import Anthropic
            self._client = Anthropic(api_key=self._api_key)
        return self._client

    def generate_reply(self, system_prompt: str, user_message: str, params: ModelParams) -> str:
        import anthropic

        try:
            msg = self._get_client().messages.create(
                model=params.model,
                max_tokens=params.max_tokens,
                temperature=params.temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_message}],
                timeout=params.timeout_sec,
            )
        except anthropic.APITimeoutError as e:
            raise LLMReplyError("timeout") from e
        except anthropic.APIError as e:
            raise LLMReplyError(str(e)) from e
        # content = liste de blocs (text, etc.)
        out = ""
        for block in getattr(msg, "content", []):
            if getattr(block, "type", None) == "text":
                out += getattr(block, "text", "") or ""
        out = out.strip()
        if not out:
            raise LLMReplyError("empty completion")
        return out


def get_default_reply_client() -> ReplyClient:
    """AnthropicReplyClient si ANTHROPIC_API_KEY est défini, sinon StubReplyClient (non configuré)."""
    api_key = os.getenv("ANTHROPIC_API_KEY", "").strip()
    if api_key:
        return AnthropicReplyClient(api_key=api_key)
    logger.warning("get_default_reply_client: ANTHROPIC_API_KEY missing, replies will use fallback text")
    return StubReplyClient()
