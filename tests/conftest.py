"""
Configuration pytest : horloge figée, faux calendrier et fabrique d'engine.
Aucun appel réseau : LLM et calendrier sont remplacés par des fakes en mémoire.
"""
from __future__ import annotations

import os
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from salesflow.calendar_adapter import CalendarCredential, InMemoryCredentialStore, MeetingResult
from salesflow.engine import StageEngine
from salesflow.knowledge import KnowledgeBase
from salesflow.llm_client import StubReplyClient
from salesflow.session import SessionStore
from salesflow.stage_store import InMemoryStageStore

# Lundi 19/10/2026 10:00 (São Paulo)
FIXED_NOW = datetime(2026, 10, 19, 10, 0, tzinfo=ZoneInfo("America/Sao_Paulo"))

AGENT_ID = "ag"


def pytest_configure(config):
    """Pas d'appel LLM réel depuis create_engine() pendant les tests."""
    os.environ.pop("ANTHROPIC_API_KEY", None)


class FakeCalendar:
    """Enregistre les appels create_meeting ; lève `error` si positionné."""

    def __init__(self) -> None:
        self.calls = []
        self.error = None

    def create_meeting(self, credential, request):
        self.calls.append((credential, request))
        if self.error is not None:
            raise self.error
        event_id = f"evt-{len(self.calls)}"
        return MeetingResult(event_id=event_id, link=f"https://calendar.google.com/event?eid={event_id}")


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def fake_calendar():
    return FakeCalendar()


@pytest.fixture
def credentials():
    return InMemoryCredentialStore([CalendarCredential(user_id="owner-1", access_token="tok")])


@pytest.fixture
def make_engine(fixed_now, fake_calendar, credentials):
    """Fabrique d'engine : reply=None => client LLM en échec."""

    def _make(
        reply="Perfeito, me conta mais!",
        extraction_client=None,
        session_store=None,
        stage_store=None,
        retriever=None,
        creds=None,
        agents=None,
        reply_client=None,
    ):
        return StageEngine(
            session_store=session_store if session_store is not None else SessionStore(),
            stage_store=stage_store if stage_store is not None else InMemoryStageStore(),
            retriever=retriever if retriever is not None else KnowledgeBase(),
            reply_client=reply_client if reply_client is not None else StubReplyClient(reply),
            calendar=fake_calendar,
            credentials=creds if creds is not None else credentials,
            agents=agents,
            extraction_client=extraction_client,
            clock=lambda: fixed_now,
        )

    return _make
