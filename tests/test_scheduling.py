# tests/test_scheduling.py
"""
Déclencheur de création de réunion : précondition unique, au plus un appel,
retry au tour suivant, config manquante distinguée, créneau passé refusé sans appel.
"""
from datetime import datetime, timedelta

import pytest

from salesflow.agents import AgentProfile
from salesflow.calendar_adapter import CalendarError, InMemoryCredentialStore
from salesflow.prompts import (
    MSG_SCHEDULING_NOT_CONFIGURED,
    MSG_SCHEDULING_RETRY,
    MSG_SCHEDULING_SLOT_UNAVAILABLE,
)
from salesflow.scheduling import (
    SchedulingStatus,
    build_meeting_request,
    is_scheduling_ready,
    resolve_meeting_start,
    run_scheduling_trigger,
)
from salesflow.variables import SessionVariables


def _ready_vars(**overrides):
    data = dict(
        name="Gastão", email="gastao@gmail.com", data_reuniao="26/10", horario_reuniao="16:00",
        area="calçados", challenge="tempo de resposta",
    )
    data.update(overrides)
    return SessionVariables(**data)


AGENT = AgentProfile(agent_id="ag", name="Lia", owner_id="owner-1")


class TestReadiness:
    def test_all_three_needed(self):
        assert is_scheduling_ready(_ready_vars())
        assert not is_scheduling_ready(_ready_vars(email=None))
        assert not is_scheduling_ready(_ready_vars(data_reuniao=None))
        assert not is_scheduling_ready(_ready_vars(horario_reuniao=None))

    def test_not_ready_once_created(self):
        v = _ready_vars()
        v.mark_meeting_created("evt-1", None)
        assert not is_scheduling_ready(v)


class TestMeetingRequest:
    def test_start_in_local_timezone(self, fixed_now):
        start = resolve_meeting_start("26/10", "16:00", fixed_now)
        assert (start.year, start.month, start.day, start.hour, start.minute) == (2026, 10, 26, 16, 0)
        assert start.utcoffset() == timedelta(hours=-3)

    def test_year_rolls_over(self, fixed_now):
        assert resolve_meeting_start("05/01", "9:00", fixed_now).year == 2027

    def test_impossible_date_raises(self, fixed_now):
        with pytest.raises(ValueError):
            resolve_meeting_start("29/02", "9:00", fixed_now)  # 2027 n'est pas bissextile

    def test_title_description_duration(self, fixed_now):
        req = build_meeting_request(AGENT, _ready_vars(), fixed_now)
        assert req.title == "Lia + Gastão"
        assert req.attendee_email == "gastao@gmail.com"
        assert "Área: calçados" in req.notes
        assert "Desafio: tempo de resposta" in req.notes
        assert req.end - req.start == timedelta(minutes=45)


class TestTrigger:
    def test_created_once(self, fixed_now, fake_calendar, credentials):
        v = _ready_vars()
        first = run_scheduling_trigger(v, AGENT, fake_calendar, credentials, fixed_now)
        assert first.status == SchedulingStatus.CREATED
        assert v.meeting_created is True
        assert v.event_id == "evt-1"
        assert v.event_link.endswith("evt-1")

        second = run_scheduling_trigger(v, AGENT, fake_calendar, credentials, fixed_now)
        assert second.status == SchedulingStatus.SKIPPED
        assert len(fake_calendar.calls) == 1

    def test_skipped_when_not_ready(self, fixed_now, fake_calendar, credentials):
        out = run_scheduling_trigger(_ready_vars(email=None), AGENT, fake_calendar, credentials, fixed_now)
        assert out.status == SchedulingStatus.SKIPPED
        assert fake_calendar.calls == []

    def test_transient_failure_retried_next_call(self, fixed_now, fake_calendar, credentials):
        v = _ready_vars()
        fake_calendar.error = CalendarError("timeout")
        out = run_scheduling_trigger(v, AGENT, fake_calendar, credentials, fixed_now)
        assert out.status == SchedulingStatus.FAILED_TRANSIENT
        assert out.notice == MSG_SCHEDULING_RETRY
        assert v.meeting_created is False

        fake_calendar.error = None
        assert run_scheduling_trigger(v, AGENT, fake_calendar, credentials, fixed_now).created
        assert len(fake_calendar.calls) == 2

    def test_unexpected_error_is_transient(self, fixed_now, fake_calendar, credentials):
        fake_calendar.error = RuntimeError("boom")
        out = run_scheduling_trigger(_ready_vars(), AGENT, fake_calendar, credentials, fixed_now)
        assert out.status == SchedulingStatus.FAILED_TRANSIENT

    def test_no_credentials_is_config_failure(self, fixed_now, fake_calendar):
        out = run_scheduling_trigger(_ready_vars(), AGENT, fake_calendar, InMemoryCredentialStore(), fixed_now)
        assert out.status == SchedulingStatus.FAILED_CONFIG
        assert out.notice == MSG_SCHEDULING_NOT_CONFIGURED
        assert fake_calendar.calls == []

    def test_unusable_date_does_not_call_calendar(self, fixed_now, fake_calendar, credentials):
        # 29/02 -> 2027 : date impossible
        v = _ready_vars(data_reuniao="29/02")
        out = run_scheduling_trigger(v, AGENT, fake_calendar, credentials, fixed_now)
        assert out.status == SchedulingStatus.FAILED_SLOT
        assert out.notice == MSG_SCHEDULING_SLOT_UNAVAILABLE
        assert fake_calendar.calls == []
        assert v.data_reuniao is None

    @pytest.mark.parametrize(
        "data,horario",
        [("16/10", "16:00"), ("19/10", "9:00"), ("19/10", "10:00")],
    )
    def test_past_start_never_booked(self, fixed_now, fake_calendar, credentials, data, horario):
        """Lundi 19/10 10:00 : un créneau déjà passé n'est jamais envoyé au calendrier."""
        v = _ready_vars(data_reuniao=data, horario_reuniao=horario)
        out = run_scheduling_trigger(v, AGENT, fake_calendar, credentials, fixed_now)
        assert out.status == SchedulingStatus.FAILED_SLOT
        assert fake_calendar.calls == []
        assert v.meeting_created is False
        # Créneau libéré : le prochain date/horário proposé pourra être mergé
        assert v.data_reuniao is None
        assert v.horario_reuniao is None
        assert v.email == "gastao@gmail.com"
        assert not is_scheduling_ready(v)

    def test_later_today_is_booked(self, fixed_now, fake_calendar, credentials):
        out = run_scheduling_trigger(
            _ready_vars(data_reuniao="19/10", horario_reuniao="15:00"), AGENT, fake_calendar, credentials, fixed_now,
        )
        assert out.created

    def test_request_passed_to_calendar(self, fixed_now, fake_calendar, credentials):
        run_scheduling_trigger(_ready_vars(), AGENT, fake_calendar, credentials, fixed_now)
        credential, request = fake_calendar.calls[0]
        assert credential.user_id == "owner-1"
        assert request.start == datetime(2026, 10, 26, 16, 0, tzinfo=fixed_now.tzinfo)
