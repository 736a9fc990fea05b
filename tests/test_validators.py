# tests/test_validators.py
"""
Tests des validateurs purs : nom, email, heure (horaires commerciaux), date DD/MM.
"""
import pytest

from salesflow.validators import (
    is_reserved_word,
    normalize_text,
    validate_date,
    validate_email,
    validate_name,
    validate_time,
)


def test_normalize_text_strips_accents_and_case():
    assert normalize_text("Às 16") == "as 16"
    assert normalize_text("  AMANHÃ ") == "amanha"
    assert normalize_text("") == ""


class TestValidateName:
    """Nom : rejets explicites avec raison, nom accepté capitalisé."""

    def test_accepts_and_capitalizes(self):
        assert validate_name("gastão").normalized == "Gastão"
        assert validate_name("maria silva").normalized == "Maria Silva"

    def test_trailing_exclamation_dropped(self):
        assert validate_name("Gastão!").normalized == "Gastão"

    def test_apostrophe_and_hyphen(self):
        assert validate_name("d'ávila").valid
        assert validate_name("Ana-Maria").normalized == "Ana-Maria"

    @pytest.mark.parametrize(
        "value,reason",
        [
            ("a", "too_short"),
            ("segunda", "reserved_word"),
            ("Amanhã", "reserved_word"),
            ("ok", "reserved_word"),
            ("123", "number"),
            ("joao@x.com", "email"),
            ("as 16", "time_like"),
            ("16h", "time_like"),
            ("Jo#o", "illegal_chars"),
            ("Oi!", "reserved_word"),
            ("Ok!", "reserved_word"),
            ("Sim!", "reserved_word"),
            ("¡Hola", "illegal_chars"),
            ("Ana--Maria", "illegal_chars"),
            ("Ana~", "illegal_chars"),
        ],
    )
    def test_rejections(self, value, reason):
        result = validate_name(value)
        assert result.valid is False
        assert result.reason == reason

    def test_reserved_word_helper(self):
        assert is_reserved_word("Sábado")
        assert not is_reserved_word("Gastão")
        assert is_reserved_word("Oi!")


class TestValidateEmail:
    def test_lowercased(self):
        assert validate_email(" Gastao@Gmail.com ").normalized == "gastao@gmail.com"

    def test_rejects_bad_format(self):
        assert validate_email("gastao@").reason == "bad_format"
        assert validate_email("").reason == "empty"


class TestValidateTime:
    """Heure : formats 'as 16', '16:30', '9h15', '14' ; bornes [6, 22]."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("as 16", "16:00"),
            ("Às 16h", "16:00"),
            ("at 9:30", "9:30"),
            ("16:30", "16:30"),
            ("9h15", "9:15"),
            ("14", "14:00"),
            ("22:00", "22:00"),
            ("6", "6:00"),
        ],
    )
    def test_accepted(self, value, expected):
        result = validate_time(value)
        assert result.valid, result.reason
        assert result.normalized == expected

    def test_outside_business_hours(self):
        assert validate_time("23:00").reason == "outside_business_hours"
        assert validate_time("5").reason == "outside_business_hours"

    def test_bad_minutes_and_format(self):
        assert validate_time("16:75").reason == "bad_minutes"
        assert validate_time("amanhã").reason == "bad_format"


class TestValidateDate:
    """Date : DD/MM ou DD-MM (sans année), jours par mois."""

    def test_normalized_two_digits(self):
        assert validate_date("26/10").normalized == "26/10"
        assert validate_date("5/3").normalized == "05/03"
        assert validate_date("26-10").normalized == "26/10"

    def test_february_29_allowed(self):
        assert validate_date("29/02").valid

    @pytest.mark.parametrize(
        "value,reason",
        [
            ("31/04", "bad_day"),
            ("30/02", "bad_day"),
            ("32/01", "bad_day"),
            ("10/13", "bad_month"),
            ("abc", "bad_format"),
            ("26/10/2026", "bad_format"),
        ],
    )
    def test_rejections(self, value, reason):
        assert validate_date(value).reason == reason
