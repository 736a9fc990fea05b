# salesflow/knowledge.py
"""
Base de connaissance par agent (retrieveContext).
V1 : store en mémoire, matching lexical flou (rapidfuzz), top-k au-dessus d'un seuil.
Liste vide = réponse valide (le prompt l'indique au modèle).
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from rapidfuzz import fuzz, process

from salesflow import config

logger = logging.getLogger(__name__)


def _norm(s: str) -> str:
    """Normalisation simple (déterministe)."""
    return (s or "").strip().lower()


@dataclass(frozen=True)
class KnowledgeChunk:
    chunk_id: str
    content: str
    title: str = ""

    @property
    def search_text(self) -> str:
        return _norm(f"{self.title} {self.content}")


class KnowledgeRetriever(Protocol):
    def retrieve_context(self, agent_id: str, query: str) -> List[str]:
        ...


class KnowledgeBase:
    """Store en mémoire par agent. Ordre de sortie : score décroissant, puis ordre d'insertion."""

    def __init__(
        self,
        chunks_by_agent: Optional[Dict[str, Iterable[KnowledgeChunk]]] = None,
        min_score: Optional[float] = None,
        top_k: Optional[int] = None,
    ) -> None:
        self._chunks: Dict[str, List[KnowledgeChunk]] = {
            agent_id: list(chunks) for agent_id, chunks in (chunks_by_agent or {}).items()
        }
        self.min_score = config.KNOWLEDGE_MIN_SCORE if min_score is None else min_score
        self.top_k = config.KNOWLEDGE_TOP_K if top_k is None else top_k

    def add(self, agent_id: str, chunk: KnowledgeChunk) -> None:
        self._chunks.setdefault(agent_id, []).append(chunk)

    def search(self, agent_id: str, query: str) -> List[Tuple[KnowledgeChunk, float]]:
        q = _norm(query)
        chunks = self._chunks.get(agent_id) or []
        if not q or not chunks:
            return []
        texts = [c.search_text for c in chunks]
        results = process.extract(q, texts, scorer=fuzz.token_set_ratio, limit=self.top_k)
        out: List[Tuple[KnowledgeChunk, float]] = []
        for _choice, score, idx in sorted(results, key=lambda r: (-r[1], r[2])):
            score_norm = float(score) / 100.0
            if score_norm >= self.min_score:
                out.append((chunks[idx], score_norm))
        return out

    def retrieve_context(self, agent_id: str, query: str) -> List[str]:
        hits = self.search(agent_id, query)
        if hits:
            logger.debug(
                "[KNOWLEDGE] agent=%s hits=%s",
                agent_id, [(c.chunk_id, round(s, 2)) for c, s in hits],
            )
        return [c.content for c, _ in hits]


def load_knowledge_file(path: str) -> KnowledgeBase:
    """
    Charge un JSON {"agent_id": [{"id": "...", "title": "...", "content": "..."}]}.
    Fichier absent => base vide.
    """
    p = Path(path)
    if not p.exists():
        logger.info("[KNOWLEDGE] no knowledge file at %s (empty base)", path)
        return KnowledgeBase()
    raw = json.loads(p.read_text(encoding="utf-8"))
    return KnowledgeBase({
        agent_id: [
            KnowledgeChunk(
                chunk_id=str(item.get("id") or i),
                title=item.get("title") or "",
                content=item["content"],
            )
            for i, item in enumerate(items)
        ]
        for agent_id, items in raw.items()
    })
