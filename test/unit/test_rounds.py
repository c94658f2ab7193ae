from __future__ import annotations

import pytest

from carnavul.utils.rounds import (
    Round,
    classify_round,
    detect_round_in_title,
    is_round_phrase,
    round_priority,
)


@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("Liguilla", 3),
        ("LIGUILLA", 3),
        ("Segunda Rueda", 2),
        ("2da Rueda", 2),
        ("Primera Rueda", 1),
        ("1ra Rueda", 1),
        ("1era rueda", 1),
        (None, 0),
        ("", 0),
        ("Fragmento", 0),
    ],
)
def test_round_priority(label: object, expected: int) -> None:
    assert round_priority(label) == expected


def test_liguilla_outranks_rueda_markers_in_same_label() -> None:
    assert classify_round("Liguilla Segunda Rueda") is Round.LIGUILLA


def test_round_labels() -> None:
    assert Round.PRIMERA.label == "Primera Rueda"
    assert Round.SEGUNDA.label == "Segunda Rueda"
    assert Round.LIGUILLA.label == "Liguilla"
    assert Round.NONE.label is None


def test_is_round_phrase() -> None:
    assert is_round_phrase("Primera Rueda")
    assert is_round_phrase("2da rueda")
    assert is_round_phrase("Liguilla")
    assert not is_round_phrase("Espectáculo completo")
    assert not is_round_phrase(None)


def test_detect_round_in_title() -> None:
    assert detect_round_in_title("Agarrate Catalina 2019 - Liguilla") == "Liguilla"
    assert detect_round_in_title("Falta y Resto 2018 2da Rueda") == "Segunda Rueda"
    assert detect_round_in_title("Falta y Resto 2018 primera rueda") == "Primera Rueda"
    assert detect_round_in_title("Falta y Resto 2018") is None
