# salesflow/engine.py
"""
Orchestrateur de tour : point d'entrée handle_message(message, thread_id, agent_id).

Ordre STRICT par tour (sous lock du thread) :
  extraction → merge → transition pré-réponse → prompt → LLM → seconde passe (LLM) → merge
  → déclencheur agendamento → sauvegarde.

L'utilisateur reçoit toujours une réponse (éventuellement dégradée) ; seule une erreur
de persistance remonte à l'appelant.
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from salesflow import config
from salesflow.agents import AgentDirectory, load_agents_file
from salesflow.calendar_adapter import (
    CalendarAdapter,
    CredentialStore,
    get_calendar_adapter,
    load_credentials_file,
)
from salesflow.entity_extraction import extract_candidates
from salesflow.knowledge import KnowledgeRetriever, load_knowledge_file
from salesflow.llm_client import ModelParams, ReplyClient, get_default_reply_client
from salesflow.llm_extraction import ExtractionClient, get_default_extraction_client, llm_extract
from salesflow.prompts import MSG_LLM_FALLBACK, PromptFlags, append_notice, assemble_prompt
from salesflow.scheduling import SchedulingStatus, run_scheduling_trigger
from salesflow.session import Session, SessionRepository, move_to, new_session
from salesflow.stage_store import SQLiteStageStore, StageStore, ensure_stages
from salesflow.stages import Stage, StageType, find_by_id, find_by_type, sort_stages
from salesflow.thread_locks import ThreadLockRegistry, ThreadLocks
from salesflow.transition_policy import (
    TransitionKind,
    decide_post_reply,
    decide_pre_response,
)
from salesflow.variables import merge_variables

logger = logging.getLogger(__name__)


def _mask_for_log(text: str, max_len: int = 50) -> str:
    """Masque email / téléphone dans les logs."""
    if not text or not isinstance(text, str):
        return ""
    t = text.strip()[:max_len]
    t = re.sub(r"\S+@\S+\.\S+", "[EMAIL]", t)
    t = re.sub(r"\d[\d\s\-\.]{7,}", "[TEL]", t)
    return t


@dataclass(frozen=True)
class TurnResult:
    """Résultat d'un tour, renvoyé au transport (chat API, webhook)."""
    reply: str
    stage_id: str
    stage_name: str
    previous_stage_id: Optional[str]
    variables: Dict[str, Any] = field(default_factory=dict)
    transitioned: bool = False
    meeting_created: bool = False
    degraded: bool = False
    scheduling_status: str = SchedulingStatus.SKIPPED.value


class StageEngine:
    """
    Moteur d'étapes. Toutes les dépendances sont injectées (aucun état global) :
    plusieurs instances peuvent cohabiter dans un même process.
    """

    def __init__(
        self,
        session_store: SessionRepository,
        stage_store: StageStore,
        retriever: KnowledgeRetriever,
        reply_client: ReplyClient,
        calendar: CalendarAdapter,
        credentials: CredentialStore,
        agents: Optional[AgentDirectory] = None,
        extraction_client: Optional[ExtractionClient] = None,
        locks: Optional[ThreadLocks] = None,
        clock: Callable[[], datetime] = config.now_local,
        model_params: Optional[ModelParams] = None,
    ):
        self.session_store = session_store
        self.stage_store = stage_store
        self.retriever = retriever
        self.reply_client = reply_client
        self.calendar = calendar
        self.credentials = credentials
        self.agents = agents or AgentDirectory()
        self.extraction_client = extraction_client
        self.locks = locks or ThreadLockRegistry()
        self.clock = clock
        self.model_params = model_params or ModelParams()

    # ----------------------------
    # Session
    # ----------------------------

    def _load_or_create(self, thread_id: str, agent_id: str, stages: Sequence[Stage]) -> Session:
        session = self.session_store.get(thread_id)
        if session is None:
            first = sort_stages(stages)[0]
            session = new_session(thread_id, agent_id, first.id)
            logger.info("[SESSION] created thread=%s agent=%s stage=%s", thread_id, agent_id, first.id)
            return session
        if find_by_id(stages, session.current_stage_id) is None:
            # Étapes redéfinies depuis : on repart de la première (historique conservé)
            first = sort_stages(stages)[0]
            logger.warning(
                "[SESSION] thread=%s unknown stage %s, resetting to %s",
                thread_id, session.current_stage_id, first.id,
            )
            move_to(session, first.id, "stage_not_found")
        return session

    def get_state(self, thread_id: str) -> Optional[Session]:
        """Lecture seule (API debug / dashboard)."""
        return self.session_store.get(thread_id)

    # ----------------------------
    # Capacités externes (jamais fatales)
    # ----------------------------

    def _retrieve(self, agent_id: str, text: str) -> List[str]:
        try:
            return list(self.retriever.retrieve_context(agent_id, text))
        except Exception as e:
            logger.warning("[TURN] retrieve_context failed agent=%s: %s", agent_id, e)
            return []

    def _generate(self, prompt: str, text: str) -> Optional[str]:
        try:
            return self.reply_client.generate_reply(prompt, text, self.model_params)
        except Exception as e:
            logger.warning("[TURN] generate_reply failed: %s: %s", type(e).__name__, e)
            return None

    # ----------------------------
    # Tour
    # ----------------------------

    def handle_message(self, message: str, thread_id: str, agent_id: str) -> TurnResult:
        text = (message or "").strip()[: config.MAX_MESSAGE_LENGTH]
        with self.locks.hold(thread_id):
            return self._handle_locked(text, thread_id, agent_id)

    def _handle_locked(self, text: str, thread_id: str, agent_id: str) -> TurnResult:
        t_start = time.time()
        now = self.clock()
        stages = ensure_stages(self.stage_store, agent_id)
        session = self._load_or_create(thread_id, agent_id, stages)
        agent = self.agents.get(agent_id)
        start_stage_id = session.current_stage_id
        current = find_by_id(stages, start_stage_id)

        session.add_message("user", text)
        session.turn_count += 1
        logger.info(
            "[TURN] thread=%s stage=%s turn=%s user=%s",
            thread_id, start_stage_id, session.turn_count, _mask_for_log(text),
        )

        # 1) Extraction déterministe + merge
        candidates = extract_candidates(text, session.variables.to_dict(), now)
        session.variables = merge_variables(session.variables, candidates.values, source="deterministic").variables

        # 2) Transition pré-réponse
        decision = decide_pre_response(current, stages, session.variables, text)
        moved_pre = False
        if decision.moves:
            if decision.kind == TransitionKind.HANDOFF and not session.variables.is_set("handoff_reason"):
                session.variables.handoff_reason = decision.reason
            elif decision.kind == TransitionKind.BUYING_INTENT:
                session.variables.mark_buying_intent()
            moved_pre = move_to(session, decision.target.id, decision.kind.value)
        active = find_by_id(stages, session.current_stage_id)

        # 3) Prompt + réponse
        context = self._retrieve(agent_id, text)
        prompt = assemble_prompt(
            agent, active, stages, session, context,
            PromptFlags(needs_basic_info=decision.needs_basic_info), now,
        )
        generated = self._generate(prompt, text)
        degraded = generated is None
        reply = generated if generated is not None else MSG_LLM_FALLBACK

        # 4) Seconde passe (LLM) : candidats mergés, décision seulement si rien n'a bougé
        if generated is not None:
            assist = llm_extract(
                self.extraction_client, text, generated, active.name,
                session.variables.to_dict(), active.required_variables,
            )
            if assist is not None:
                session.variables = merge_variables(session.variables, assist.extracted, source="llm").variables
                if not moved_pre:
                    post = decide_post_reply(active, stages, session.variables, assist.advance)
                    if post.moves:
                        move_to(session, post.target.id, post.kind.value)

        # 5) Effet de bord : au plus un appel par tour
        outcome = run_scheduling_trigger(session.variables, agent, self.calendar, self.credentials, now)
        if outcome.created:
            confirmation = find_by_type(stages, StageType.HANDOFF) or sort_stages(stages)[-1]
            move_to(session, confirmation.id, TransitionKind.MEETING_CREATED.value)
        elif outcome.notice:
            reply = append_notice(reply, outcome.notice)
            degraded = True

        session.add_message("assistant", reply)

        # 6) Persistance : une erreur ici remonte (jamais avalée)
        self.session_store.save(session)

        final_stage = find_by_id(stages, session.current_stage_id)
        logger.info(
            "turn_completed",
            extra={
                "event": "turn_completed",
                "thread_id": thread_id,
                "agent_id": agent_id,
                "stage_from": start_stage_id,
                "stage_to": session.current_stage_id,
                "scheduling": outcome.status.value,
                "degraded": degraded,
                "ms": int((time.time() - t_start) * 1000),
            },
        )
        return TurnResult(
            reply=reply,
            stage_id=final_stage.id,
            stage_name=final_stage.name,
            previous_stage_id=session.previous_stage_id,
            variables=session.variables.to_dict(),
            transitioned=session.current_stage_id != start_stage_id,
            meeting_created=outcome.created,
            degraded=degraded,
            scheduling_status=outcome.status.value,
        )


def create_engine(
    reply_client: Optional[ReplyClient] = None,
    extraction_client: Optional[ExtractionClient] = None,
) -> StageEngine:
    """Factory : assemble le moteur avec ses dépendances de production (config/env)."""
    if config.use_pg_sessions():
        from salesflow.session_pg import PgSessionStore, PgThreadLocks

        session_store = PgSessionStore()
        session_store.ensure_schema()
        locks: ThreadLocks = PgThreadLocks()
    else:
        from salesflow.session_store_sqlite import SQLiteSessionStore

        session_store = SQLiteSessionStore()
        locks = ThreadLockRegistry()

    return StageEngine(
        session_store=session_store,
        stage_store=SQLiteStageStore(),
        retriever=load_knowledge_file(config.KNOWLEDGE_FILE),
        reply_client=reply_client or get_default_reply_client(),
        calendar=get_calendar_adapter(),
        credentials=load_credentials_file(config.CALENDAR_CREDENTIALS_FILE),
        agents=load_agents_file(config.AGENTS_FILE),
        extraction_client=extraction_client or get_default_extraction_client(),
        locks=locks,
    )
