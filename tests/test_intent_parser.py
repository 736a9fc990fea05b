# tests/test_intent_parser.py
"""
Tests unitaires sur les fonctions pures du module intent_parser.
"""
import pytest

from salesflow.intent_parser import detect_buying_intent, detect_handoff


@pytest.mark.parametrize(
    "message",
    ["Quero falar com um humano", "tem algum atendente?", "Can I talk to a person?", "pessoa real por favor"],
)
def test_handoff_detected(message):
    assert detect_handoff(message)


@pytest.mark.parametrize("message", ["oi", "quero agendar", "", "meu nome é Ana"])
def test_handoff_not_detected(message):
    assert not detect_handoff(message)


@pytest.mark.parametrize(
    "message",
    [
        "Quero agendar uma reunião",
        "Gostaria de marcar uma apresentação",
        "quanto custa?",
        "Estou interessada!",
        "I want to book a demo",
        "Qual horário vocês têm?",
    ],
)
def test_buying_intent_detected(message):
    assert detect_buying_intent(message)


@pytest.mark.parametrize("message", ["oi, tudo bem?", "trabalho com padaria", "Gastão", "   "])
def test_buying_intent_not_detected(message):
    assert not detect_buying_intent(message)
