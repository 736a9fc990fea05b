# tests/test_entity_extraction.py
"""
Tests pour l'extraction déterministe (passes ordonnées).
Horloge figée : lundi 19/10/2026.
"""
from datetime import date

import pytest

from salesflow.entity_extraction import EXTRACTION_PASSES, extract_candidates, month_for_day, next_weekday


def _values(message, fixed_now, existing=None):
    return extract_candidates(message, existing=existing, now=fixed_now).values


def test_pass_order_dates_before_name():
    """Dates et heures passent avant le nom."""
    names = [name for name, _ in EXTRACTION_PASSES]
    assert names.index("relative_date") < names.index("name")
    assert names.index("weekday") < names.index("name")
    assert names.index("time") < names.index("name")


class TestDates:
    """Dates relatives, jours de semaine, dates numériques."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("hoje", "19/10"),
            ("amanhã", "20/10"),
            ("depois de amanhã", "21/10"),
            ("tomorrow works", "20/10"),
        ],
    )
    def test_relative(self, fixed_now, message, expected):
        assert _values(message, fixed_now)["data_reuniao"] == expected

    def test_same_weekday_means_next_week(self, fixed_now):
        assert _values("segunda", fixed_now)["data_reuniao"] == "26/10"

    @pytest.mark.parametrize(
        "message,expected",
        [("quinta-feira", "22/10"), ("pode ser sexta", "23/10"), ("friday", "23/10")],
    )
    def test_weekday(self, fixed_now, message, expected):
        assert _values(message, fixed_now)["data_reuniao"] == expected

    def test_next_weekday_helper(self):
        # 2026-10-19 = lundi
        assert next_weekday(date(2026, 10, 19), 2) == date(2026, 10, 21)
        assert next_weekday(date(2026, 10, 19), 0) == date(2026, 10, 26)

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("26/10", "26/10"),
            ("dia 5 de novembro", "05/11"),
            ("dia 26", "26/10"),
            ("day 3 of december", "03/12"),
        ],
    )
    def test_numeric(self, fixed_now, message, expected):
        assert _values(message, fixed_now)["data_reuniao"] == expected

    def test_impossible_date_discarded(self, fixed_now):
        assert "data_reuniao" not in _values("31/02", fixed_now)

    @pytest.mark.parametrize("message", ["26/10/2026", "dia 26/10/2026"])
    def test_date_with_year_discarded(self, fixed_now, message):
        assert "data_reuniao" not in _values(message, fixed_now)

    def test_past_day_without_month_is_next_month(self, fixed_now):
        assert _values("dia 5", fixed_now)["data_reuniao"] == "05/11"

    def test_month_for_day(self):
        assert month_for_day(date(2026, 10, 19), 19) == 10
        assert month_for_day(date(2026, 10, 19), 18) == 11
        assert month_for_day(date(2026, 12, 20), 5) == 1

    @pytest.mark.parametrize(
        "message",
        ["meu maior desafio hoje é o tempo de resposta", "hoje em dia a gente perde muito lead"],
    )
    def test_hoje_as_adverb_is_not_a_date(self, fixed_now, message):
        result = extract_candidates(message, now=fixed_now)
        assert "data_reuniao" not in result.values
        assert result.consumed_as_date_or_time is False

    def test_hoje_in_diagnosis_keeps_challenge(self, fixed_now):
        values = _values("meu maior desafio hoje é o tempo de resposta", fixed_now)
        assert values == {"challenge": "tempo de resposta"}

    def test_weekday_never_becomes_name(self, fixed_now):
        result = extract_candidates("segunda", now=fixed_now)
        assert result.consumed_as_date_or_time is True
        assert "name" not in result.values


class TestTime:
    """Heures : formes explicites, périodes, nombre seul."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("as 16", "16:00"),
            ("Às 16h", "16:00"),
            ("16h30", "16:30"),
            ("às 4 da tarde", "16:00"),
            ("3pm", "15:00"),
            ("pode ser 10:30?", "10:30"),
        ],
    )
    def test_time_forms(self, fixed_now, message, expected):
        assert _values(message, fixed_now)["horario_reuniao"] == expected

    def test_outside_business_hours_discarded(self, fixed_now):
        values = _values("as 23", fixed_now)
        assert "horario_reuniao" not in values
        assert "name" not in values

    def test_bare_number_hour_and_day(self, fixed_now):
        """Nombre seul dans [6,22] et [1,31] : heure ET jour ; 16 < 19 => mois suivant."""
        values = _values("16", fixed_now)
        assert values["horario_reuniao"] == "16:00"
        assert values["data_reuniao"] == "16/11"

    def test_bare_number_with_known_date_only_hour(self, fixed_now):
        values = _values("16", fixed_now, existing={"data_reuniao": "26/10"})
        assert values == {"horario_reuniao": "16:00"}

    def test_bare_number_day_only(self, fixed_now):
        values = _values("3", fixed_now)
        assert values == {"data_reuniao": "03/11"}

    def test_bare_number_out_of_range(self, fixed_now):
        assert _values("45", fixed_now) == {}


class TestAreaAndChallenge:
    @pytest.mark.parametrize(
        "message,expected",
        [
            ("I run a shoe store", "shoe store"),
            ("trabalho com marketing digital", "marketing digital"),
            ("tenho uma clínica odontológica", "clínica odontológica"),
            ("my business is a bakery.", "bakery"),
        ],
    )
    def test_area(self, fixed_now, message, expected):
        assert _values(message, fixed_now)["area"] == expected

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("meu maior desafio é gerar leads", "gerar leads"),
            ("my challenge is response time", "response time"),
        ],
    )
    def test_challenge(self, fixed_now, message, expected):
        assert _values(message, fixed_now)["challenge"] == expected

    def test_area_does_not_consume(self, fixed_now):
        result = extract_candidates("I run a shoe store", now=fixed_now)
        assert result.consumed_as_date_or_time is False


class TestName:
    """Porte conservatrice : en cas de doute, pas de nom."""

    def test_single_word(self, fixed_now):
        assert _values("Gastão", fixed_now)["name"] == "Gastão"
        assert _values("ana", fixed_now)["name"] == "Ana"
        assert _values("Gastão!", fixed_now)["name"] == "Gastão"

    @pytest.mark.parametrize(
        "message", ["Maria Silva", "ok", "sim", "joão?", "123", "oi", "Oi!", "Ok!", "Sim!", "Olá!!"],
    )
    def test_not_a_name(self, fixed_now, message):
        assert "name" not in _values(message, fixed_now)

    def test_known_name_not_reproposed(self, fixed_now):
        assert "name" not in _values("Pedro", fixed_now, existing={"name": "Gastão"})

    def test_long_message_never_a_name(self, fixed_now):
        assert "name" not in _values("Abcdefghijklmnopqrstuvwxyzabcdef", fixed_now)


class TestContact:
    def test_email(self, fixed_now):
        values = _values("meu email é Gastao@Gmail.com", fixed_now)
        assert values["email"] == "gastao@gmail.com"
        assert "name" not in values

    def test_bare_email_not_a_name(self, fixed_now):
        assert _values("gastao@gmail.com", fixed_now) == {"email": "gastao@gmail.com"}

    def test_phone(self, fixed_now):
        assert _values("meu whatsapp é (11) 98765-4321", fixed_now)["phone"] == "11987654321"

    def test_digits_inside_email_not_phone(self, fixed_now):
        values = _values("ana.11987654321@gmail.com", fixed_now)
        assert "phone" not in values
        assert values["email"] == "ana.11987654321@gmail.com"
