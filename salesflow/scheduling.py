# salesflow/scheduling.py
"""
Déclencheur de l'effet de bord "création de réunion".

- Précondition unique (is_scheduling_ready) partagée par le déclencheur et les tests.
- Au plus UN appel externe par tour. Pas de retry dans le tour : la condition reste vraie
  tant que meetingCreated n'est pas posé, donc le tour suivant retente naturellement.
- Succès : meetingCreated + eventId/eventLink. Échec : rien n'est posé, un avis est ajouté à la réponse.
- Créneau passé ou impossible : pas d'appel, data/horário libérés pour une nouvelle proposition.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from salesflow import config
from salesflow.agents import AgentProfile
from salesflow.calendar_adapter import (
    CalendarAdapter,
    CalendarError,
    CalendarNotConfigured,
    CredentialStore,
    MeetingRequest,
    resolve_credential,
)
from salesflow.prompts import (
    MSG_SCHEDULING_NOT_CONFIGURED,
    MSG_SCHEDULING_RETRY,
    MSG_SCHEDULING_SLOT_UNAVAILABLE,
)
from salesflow.variables import SessionVariables

logger = logging.getLogger(__name__)


class SchedulingStatus(str, Enum):
    SKIPPED = "skipped"
    CREATED = "created"
    FAILED_TRANSIENT = "failed_transient"
    FAILED_CONFIG = "failed_config"
    FAILED_SLOT = "failed_slot"


@dataclass(frozen=True)
class SchedulingOutcome:
    status: SchedulingStatus
    event_id: Optional[str] = None
    link: Optional[str] = None
    notice: Optional[str] = None  # avis user-facing à ajouter à la réponse

    @property
    def created(self) -> bool:
        return self.status == SchedulingStatus.CREATED


def is_scheduling_ready(variables: SessionVariables) -> bool:
    """email, data_reuniao et horario_reuniao renseignés ET réunion pas encore créée."""
    return (
        variables.is_set("email")
        and variables.is_set("data_reuniao")
        and variables.is_set("horario_reuniao")
        and not variables.meeting_created
    )


def resolve_meeting_start(data_reuniao: str, horario_reuniao: str, now: datetime) -> datetime:
    """
    'DD/MM' + 'H:MM' -> instant absolu dans le fuseau de `now`.
    Mois antérieur au mois courant => année suivante. Lève ValueError si date impossible.
    """
    day_s, month_s = data_reuniao.split("/")[:2]
    hour_s, minute_s = horario_reuniao.split(":")
    day, month = int(day_s), int(month_s)
    year = now.year + 1 if month < now.month else now.year
    tz = now.tzinfo or config.tzinfo()
    return datetime(year, month, day, int(hour_s), int(minute_s), tzinfo=tz)


def build_meeting_request(agent: AgentProfile, variables: SessionVariables, now: datetime) -> MeetingRequest:
    start = resolve_meeting_start(variables.data_reuniao or "", variables.horario_reuniao or "", now)
    lead = variables.name or "Lead"
    notes = "\n".join([
        "Reunião agendada via chat.",
        f"Área: {variables.area or 'N/A'}",
        f"Desafio: {variables.challenge or 'N/A'}",
        f"Telefone: {variables.phone or 'N/A'}",
    ])
    return MeetingRequest(
        title=f"{agent.label} + {lead}",
        start=start,
        end=start + timedelta(minutes=config.MEETING_DURATION_MINUTES),
        attendee_email=variables.email,
        notes=notes,
    )


def _reject_slot(variables: SessionVariables, reason: str) -> SchedulingOutcome:
    """Pas d'appel calendrier ; data/horário libérés sinon le merge (slot déjà rempli) bloquerait la correction."""
    logger.warning(
        "[SCHEDULE] unusable slot %s %s: %s", variables.data_reuniao, variables.horario_reuniao, reason,
    )
    variables.clear_meeting_slot()
    return SchedulingOutcome(status=SchedulingStatus.FAILED_SLOT, notice=MSG_SCHEDULING_SLOT_UNAVAILABLE)


def run_scheduling_trigger(
    variables: SessionVariables,
    agent: AgentProfile,
    calendar: CalendarAdapter,
    credentials: CredentialStore,
    now: datetime,
) -> SchedulingOutcome:
    """Exécute la création au plus une fois. Sur succès, marque `variables` (meetingCreated, eventId, eventLink)."""
    if not is_scheduling_ready(variables):
        return SchedulingOutcome(status=SchedulingStatus.SKIPPED)

    try:
        request = build_meeting_request(agent, variables, now)
    except ValueError as e:
        return _reject_slot(variables, f"impossible date: {e}")
    if request.start <= now:
        return _reject_slot(variables, f"start {request.start.isoformat()} already passed")

    try:
        credential = resolve_credential(credentials, agent.owner_id)
        result = calendar.create_meeting(credential, request)
    except CalendarNotConfigured as e:
        logger.warning("[SCHEDULE_NOT_CONFIGURED] agent=%s: %s", agent.agent_id, e)
        return SchedulingOutcome(status=SchedulingStatus.FAILED_CONFIG, notice=MSG_SCHEDULING_NOT_CONFIGURED)
    except CalendarError as e:
        logger.warning("[SCHEDULE] create_meeting failed agent=%s: %s", agent.agent_id, e)
        return SchedulingOutcome(status=SchedulingStatus.FAILED_TRANSIENT, notice=MSG_SCHEDULING_RETRY)
    except Exception:
        logger.exception("[SCHEDULE] unexpected calendar error agent=%s", agent.agent_id)
        return SchedulingOutcome(status=SchedulingStatus.FAILED_TRANSIENT, notice=MSG_SCHEDULING_RETRY)

    variables.mark_meeting_created(result.event_id, result.link)
    logger.info(
        "[SCHEDULE] meeting created agent=%s start=%s event_id=%s",
        agent.agent_id, request.start.isoformat(), result.event_id,
    )
    return SchedulingOutcome(status=SchedulingStatus.CREATED, event_id=result.event_id, link=result.link)
