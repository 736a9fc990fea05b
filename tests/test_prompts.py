# tests/test_prompts.py
"""
Prompt système : quatre blocs ordonnés, déterministe, horloge injectée.
"""
from datetime import datetime
from zoneinfo import ZoneInfo

from salesflow.agents import AgentProfile
from salesflow.prompts import (
    MSG_SCHEDULING_RETRY,
    PromptFlags,
    append_notice,
    assemble_prompt,
    format_context,
    next_business_days,
)
from salesflow.session import new_session
from salesflow.stages import default_stages, find_by_id


def _build(fixed_now, variables=None, context=(), flags=None, slug="identify"):
    stages = default_stages("ag")
    session = new_session("t1", "ag", f"ag:{slug}")
    if variables:
        for k, v in variables.items():
            session.variables.set(k, v)
    agent = AgentProfile(agent_id="ag", name="Lia", company_profile="Agência de automação comercial.")
    return assemble_prompt(
        agent, find_by_id(stages, f"ag:{slug}"), stages, session, list(context), flags or PromptFlags(), fixed_now,
    )


class TestAssemblePrompt:
    def test_deterministic(self, fixed_now):
        assert _build(fixed_now, {"name": "Ana"}) == _build(fixed_now, {"name": "Ana"})

    def test_block_order(self, fixed_now):
        prompt = _build(fixed_now)
        idx = [prompt.index(h) for h in ("# IDENTIDADE", "# DATA E HORA ATUAL", "# BASE DE CONHECIMENTO", "# RESPOSTA")]
        assert idx == sorted(idx)

    def test_identity_and_company(self, fixed_now):
        prompt = _build(fixed_now)
        assert "Você é Lia" in prompt
        assert "Agência de automação comercial." in prompt

    def test_state_block(self, fixed_now):
        prompt = _build(fixed_now, {"name": "Ana"})
        assert "Hoje é: Segunda-feira, 19/10/2026" in prompt
        assert "[1/6]" in prompt
        assert "Identificação (identify) ← ATUAL" in prompt
        assert '"name": "Ana"' in prompt
        # seul "area" manque encore
        assert "- area" in prompt
        assert "- name" not in prompt

    def test_no_context(self, fixed_now):
        prompt = _build(fixed_now)
        assert "Nenhum contexto adicional disponível." in prompt
        assert "<knowledge" not in prompt
        assert "</context>" not in prompt
        # Les règles anti-invention restent présentes sans contexte
        assert "Nunca invente preços" in prompt

    def test_context_delimited(self, fixed_now):
        prompt = _build(fixed_now, context=["O plano Pro custa R$ 297."])
        assert '<knowledge index="1">\nO plano Pro custa R$ 297.\n</knowledge>' in prompt
        assert "REGRAS SOBRE A BASE DE CONHECIMENTO" in prompt

    def test_needs_basic_info_directive(self, fixed_now):
        prompt = _build(fixed_now, flags=PromptFlags(needs_basic_info=True))
        assert "AINDA NÃO SABEMOS O NOME" in prompt
        assert "AINDA NÃO SABEMOS O NOME" not in _build(fixed_now)

    def test_buying_intent_directive(self, fixed_now):
        prompt = _build(fixed_now, {"name": "Ana", "buyingIntent": True}, slug="schedule")
        assert "PRIORIZE O AGENDAMENTO" in prompt

    def test_meeting_created_directive(self, fixed_now):
        prompt = _build(
            fixed_now,
            {"name": "Ana", "data_reuniao": "26/10", "horario_reuniao": "16:00", "meetingCreated": True},
            slug="confirmation",
        )
        assert "NÃO ofereça um novo agendamento" in prompt
        assert "26/10 às 16:00" in prompt


class TestHelpers:
    def test_next_business_days_from_monday(self, fixed_now):
        assert next_business_days(fixed_now) == ["Terça-feira 20/10", "Quarta-feira 21/10", "Quinta-feira 22/10"]

    def test_next_business_days_skip_weekend(self):
        friday = datetime(2026, 10, 23, 9, 0, tzinfo=ZoneInfo("America/Sao_Paulo"))
        assert next_business_days(friday, 2) == ["Segunda-feira 26/10", "Terça-feira 27/10"]

    def test_append_notice_keeps_reply(self):
        out = append_notice("Ótimo, Ana!", MSG_SCHEDULING_RETRY)
        assert out.startswith("Ótimo, Ana!")
        assert out.endswith(MSG_SCHEDULING_RETRY)
        assert append_notice("", "aviso") == "aviso"

    def test_format_context_skips_blank(self):
        assert format_context(["a", "  ", "b"]).count("<knowledge") == 2
