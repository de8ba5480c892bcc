from datetime import date

import pytest

from facturier.extraction.normalizer import (
    build_date,
    collapse_whitespace,
    expand_year,
    normalize_document_number,
    normalize_supplier,
    normalize_text,
    parse_amount,
    parse_date,
    split_pages,
    squeeze_spaces,
)


@pytest.mark.parametrize("text, hint, expected", [
    ("1 200,00", "comma", 1200.0),
    ("1.149,50", "comma", 1149.5),
    ("28,658.75", "dot", 28658.75),
    ("120,50", None, 120.5),
    ("1200.00", None, 1200.0),
    ("45", None, 45.0),
    ("1,234", "dot", 1234.0),
    ("1,234", "comma", 1.234),
    ("1.234", "comma", 1234.0),
    ("882.00 €", "dot", 882.0),
    ("1 234 567,89", "comma", 1234567.89),
])
def test_parse_amount_locales(text, hint, expected):
    assert parse_amount(text, hint) == pytest.approx(expected)


def test_parse_amount_rejects_empty_and_non_numeric():
    assert parse_amount(None) is None
    assert parse_amount("") is None
    assert parse_amount("n/a") is None


def test_parse_amount_negative():
    assert parse_amount("-12,50", "comma") == pytest.approx(-12.5)


def test_expand_year_pivot():
    assert expand_year("25") == 2025
    assert expand_year("98") == 1998
    assert expand_year("2031") == 2031


def test_build_date_invalid_returns_none():
    assert build_date(31, 2, 2025) is None
    assert build_date("15", "03", "25") == date(2025, 3, 15)


def test_parse_date_formats():
    assert parse_date("15/03/25") == date(2025, 3, 15)
    assert parse_date("le 02.12.2025") == date(2025, 12, 2)
    assert parse_date("22-01-2025") == date(2025, 1, 22)
    assert parse_date("2025-06-30") == date(2025, 6, 30)
    assert parse_date("") is None
    assert parse_date("pas de date") is None


def test_normalize_text_keeps_page_breaks():
    text = normalize_text("a\r\nb c\f\fd")
    assert text == "a\nb c\fd"
    assert split_pages(text) == ["a\nb c", "d"]


def test_split_pages_single_page():
    assert split_pages("only page") == ["only page"]


def test_whitespace_helpers():
    assert collapse_whitespace("  a \n b\t c ") == "a b c"
    assert squeeze_spaces("a   b\n  c\td ") == "a b\nc d"


def test_document_number_and_supplier_keys():
    assert normalize_document_number(" f 12 ") == "F12"
    assert normalize_document_number("2025/0142") == "2025/0142"
    assert normalize_document_number(None) == ""
    assert normalize_supplier("  rb   drinks ") == "RB DRINKS"
