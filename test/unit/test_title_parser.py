from __future__ import annotations

import pytest

from carnavul.utils.catalog import CatalogEntry
from carnavul.utils.title_parser import (
    ParsedRecord,
    is_excluded_title,
    is_placeholder_title,
    parse_title,
)


CATALOG = {
    "Murgas": ["Agarrate Catalina", "Cayó La Cabra", "La Gran Muñeca", "Falta y Resto"],
    "Parodistas": ["Los Muchachos"],
}


def test_dated_explicit_format() -> None:
    parsed = parse_title("4ta Etapa 2020 - Cayo La Cabra - Primera Rueda", {"Murgas": ["Cayó La Cabra"]})
    assert parsed.year == "2020"
    assert parsed.group == CatalogEntry(name="Cayó La Cabra", category="Murgas")
    assert parsed.round == "Primera Rueda"
    assert parsed.is_alternative_format is True


def test_undated_explicit_format_leaves_year_empty() -> None:
    parsed = parse_title("2da Etapa - Los Muchachos - Segunda Rueda", CATALOG)
    assert parsed.year is None
    assert parsed.group == CatalogEntry(name="Los Muchachos", category="Parodistas")
    assert parsed.round == "Segunda Rueda"
    assert parsed.is_alternative_format is True
    assert not parsed.is_resolved


def test_legacy_liguilla_format_assumes_2015() -> None:
    parsed = parse_title("3A ETAPA LA GRAN MUÑECA LIGUILLA", CATALOG)
    assert parsed.year == "2015"
    assert parsed.group == CatalogEntry(name="La Gran Muñeca", category="Murgas")
    assert parsed.round == "Liguilla"
    assert parsed.is_alternative_format is True


def test_general_fallback_with_round_marker() -> None:
    parsed = parse_title("Agarrate Catalina 2019 - Liguilla", CATALOG)
    assert parsed.year == "2019"
    assert parsed.group == CatalogEntry(name="Agarrate Catalina", category="Murgas")
    assert parsed.round == "Liguilla"
    assert parsed.is_alternative_format is False
    assert parsed.is_resolved


def test_general_fallback_without_round() -> None:
    parsed = parse_title("Falta y Resto - Carnaval 2018 (espectáculo completo)", CATALOG)
    assert parsed.year == "2018"
    assert parsed.group is not None
    assert parsed.group.name == "Falta y Resto"
    assert parsed.round is None


def test_explicit_shape_with_unknown_name_falls_through() -> None:
    parsed = parse_title("1ra Etapa 2021 - Grupo Desconocido - Primera Rueda", CATALOG)
    assert parsed == ParsedRecord.empty(catalog_score=parsed.catalog_score, near_miss=parsed.near_miss)
    assert parsed.group is None


def test_explicit_shape_with_non_round_suffix_uses_fallback() -> None:
    parsed = parse_title("1ra Etapa 2021 - Agarrate Catalina - Ensayo abierto", CATALOG)
    assert parsed.year == "2021"
    assert parsed.group is not None
    assert parsed.group.name == "Agarrate Catalina"
    assert parsed.is_alternative_format is False


@pytest.mark.parametrize(
    "title",
    [
        "Agarrate Catalina en vivo",
        "Murga desconocida 2019",
        "",
        "   ",
    ],
)
def test_unresolvable_titles_return_empty_record(title: str) -> None:
    parsed = parse_title(title, CATALOG)
    assert parsed.year is None
    assert parsed.group is None
    assert parsed.round is None
    assert not parsed.is_resolved


def test_non_string_title_returns_empty_record() -> None:
    assert parse_title(None, CATALOG) == ParsedRecord.empty()


def test_year_out_of_range_is_not_recognized() -> None:
    parsed = parse_title("Agarrate Catalina 1975", CATALOG)
    assert parsed.year is None


def test_excluded_titles_are_not_parsed() -> None:
    assert parse_title("Desfile Inaugural 2019 - Agarrate Catalina", CATALOG) == ParsedRecord.empty()
    assert parse_title("Prueba de Admisión 2020 - Cayó La Cabra", CATALOG) == ParsedRecord.empty()
    assert parse_title("[Private video]", CATALOG) == ParsedRecord.empty()


def test_placeholder_and_exclusion_helpers() -> None:
    assert is_placeholder_title("[Deleted video]")
    assert is_placeholder_title("")
    assert is_placeholder_title(None)
    assert not is_placeholder_title("Agarrate Catalina 2019")
    assert is_excluded_title("Llamadas 2019 - Comparsa")
    assert not is_excluded_title("Agarrate Catalina 2019")


def test_near_miss_is_reported_for_close_names() -> None:
    parsed = parse_title("Agarrate Catalona 2019", {"Murgas": ["Agarrate Catalina 2020 Liguilla"]})
    assert parsed.group is None
    assert 0.5 < parsed.catalog_score < 0.85
    assert parsed.near_miss is True


def test_as_dict_shape() -> None:
    parsed = parse_title("Agarrate Catalina 2019 - Liguilla", CATALOG)
    assert parsed.as_dict() == {
        "year": "2019",
        "conjunto": {"name": "Agarrate Catalina", "category": "Murgas"},
        "round": "Liguilla",
        "isAlternativeFormat": False,
    }
