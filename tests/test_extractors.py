from datetime import date

import pytest

from facturier.extraction.extractors.base import RowCollector, is_low_information
from facturier.extraction.extractors.generic import GenericExtractor
from facturier.extraction.extractors.italesse import ItalesseExtractor, clean_description
from facturier.extraction.extractors.lehmann import LehmannExtractor
from facturier.extraction.extractors.rb_drinks import RBDrinksExtractor
from facturier.extraction.extractors.stem import StemExtractor
from facturier.extraction.models import LineItem
from tests.samples import (
    GENERIC_TEXT,
    ITALESSE_TEXT,
    LEHMANN_TEXT,
    RB_DRINKS_TEXT,
    STEM_TEXT,
    TRUNCATED_TEXT,
)


# --- RB DRINKS ---

def test_rb_drinks_header_and_totals():
    result = RBDrinksExtractor().extract(RB_DRINKS_TEXT, "RB16749.pdf")
    invoice = result.invoice

    assert not result.errors
    assert invoice.supplier == "RB DRINKS"
    assert invoice.document_number == "F16749"
    assert invoice.document_date == date(2025, 1, 22)
    assert invoice.total_excl_tax == pytest.approx(2100.0)
    assert invoice.total_tax == pytest.approx(420.0)
    assert invoice.total_incl_tax == pytest.approx(2520.0)
    assert invoice.raw_data["gross_total"] == pytest.approx(2198.0)
    assert invoice.raw_data["header_discount"] == pytest.approx(98.0)


def test_rb_drinks_rows_with_approval_and_logo():
    result = RBDrinksExtractor().extract(RB_DRINKS_TEXT, "RB16749.pdf")
    lines = result.invoice.lines

    assert [line.reference_code for line in lines] == ["BOL-B", "JAR150-T", "FT"]
    bowl = lines[0]
    assert bowl.description == "Bol, saladier blanc 61.5cl"
    assert bowl.approval_code == "3281"
    assert bowl.logo_marking == "RELAIS TROPEZ"
    assert bowl.quantity == 600
    assert bowl.unit_price == pytest.approx(1.47)
    assert bowl.amount == pytest.approx(882.0)
    assert lines[1].amount == pytest.approx(1196.0)
    assert lines[2].description == "Frais techniques"
    assert lines[2].approval_code is None
    # lines reconcile against the gross total, before the header discount
    assert result.warnings == []


def test_rb_drinks_number_falls_back_to_file_name():
    text = RB_DRINKS_TEXT.replace("Facture N° F16749", "Facture")
    result = RBDrinksExtractor().extract(text, "rb16749.pdf")
    assert result.invoice.document_number == "RB16749"
    assert any("file name" in warning for warning in result.warnings)


# --- LEHMANN F ---

def test_lehmann_totals_come_from_last_page():
    result = LehmannExtractor().extract(LEHMANN_TEXT, "FA123.pdf")
    invoice = result.invoice

    assert invoice.document_number == "FA123"
    assert invoice.document_date == date(2025, 3, 15)
    assert invoice.total_excl_tax == pytest.approx(1200.0)
    assert invoice.total_tax == pytest.approx(240.0)
    assert invoice.total_incl_tax == pytest.approx(1440.0)
    assert invoice.raw_data["supplier_name"] == "LEHMANN FRERES"


def test_lehmann_rows_span_pages_and_skip_partial_totals():
    lines = LehmannExtractor().extract(LEHMANN_TEXT, "FA123.pdf").invoice.lines

    assert [line.reference_code for line in lines] == ["VER01", "CAR22", "PLA10"]
    assert lines[0].description == "Verre à vin 25cl gravé"
    assert lines[2].quantity == 50
    assert lines[2].unit_price == pytest.approx(16.6)
    assert sum(line.amount for line in lines) == pytest.approx(1200.0)
    assert all(line.reference_code != "TRANSPORTAF" for line in lines)


def test_lehmann_short_description_gets_reference_prefix():
    lines = LehmannExtractor().extract(LEHMANN_TEXT, "FA123.pdf").invoice.lines
    assert lines[1].description == "CAR22 - Carafe 1L"


def test_lehmann_catalog_description_replaces_row_text():
    catalog = {"car22": "Carafe en verre 1 litre avec bouchon"}
    lines = LehmannExtractor(catalog).extract(LEHMANN_TEXT, "FA123.pdf").invoice.lines
    assert lines[1].reference_code == "CAR22"
    assert lines[1].description == "Carafe en verre 1 litre avec bouchon"


def test_lehmann_learned_number_pattern_takes_precedence():
    text = LEHMANN_TEXT.replace("FACTURE N° FA 123", "Bon de livraison BL-2024-77")
    extractor = LehmannExtractor(number_patterns=[r"Bon\s+de\s+livraison\s*[:#]?\s*([A-Z]+\-\d+\-\d+)"])
    assert extractor.extract(text, "scan.pdf").invoice.document_number == "BL-2024-77"


# --- ITALESSE ---

def test_italesse_header_fields():
    invoice = ItalesseExtractor().extract(ITALESSE_TEXT, "I0142.pdf").invoice

    assert invoice.document_number == "2025/0142"
    assert invoice.document_date == date(2025, 2, 12)
    assert invoice.delivery_date == date(2025, 2, 28)
    assert invoice.total_excl_tax == pytest.approx(405.0)
    assert invoice.total_tax == 0
    assert invoice.total_incl_tax == pytest.approx(405.0)


def test_italesse_order_rows_are_cleaned():
    result = ItalesseExtractor().extract(ITALESSE_TEXT, "I0142.pdf")
    glass, bucket = result.invoice.lines

    assert glass.reference_code == "4200/C"
    assert glass.description == "VELA WINE GLASS - BOITE DE 6"
    assert glass.approval_code == "4521"
    assert glass.logo_marking == "MARQUAGE RELAIS DES COCHES"
    assert glass.color_code == "BLK"
    assert (glass.quantity, glass.unit_price, glass.amount) == (24, 12.5, 300.0)

    assert bucket.reference_code == "3100"
    assert bucket.description == "BUCKET"
    assert bucket.color_code is None
    assert result.warnings == []


def test_italesse_total_falls_back_to_line_sum():
    text = ITALESSE_TEXT.replace("TOTALE ORDINE / TOTAL AMOUNT 405,00", "")
    result = ItalesseExtractor().extract(text, "I0142.pdf")
    assert result.invoice.total_excl_tax == pytest.approx(405.0)
    assert any("Order total not found" in warning for warning in result.warnings)


def test_clean_description():
    description, approval, logo = clean_description(
        "TUMBLER IDEM DERNIERE COMMANDE PROTOCOLLO N. 77 BOITE DE 12"
    )
    assert description == "TUMBLER - BOITE DE 12"
    assert approval == "77"
    assert logo is None


# --- STEM ---

def test_stem_quote():
    result = StemExtractor().extract(STEM_TEXT, "cotation.pdf")
    invoice = result.invoice

    assert invoice.document_number == "1 2026 SOUV"
    assert invoice.document_date == date(2025, 12, 2)
    assert [line.reference_code for line in invoice.lines] == ["SOUV 1", "SOUV 2-5", "3690"]
    assert invoice.lines[1].amount == pytest.approx(1900.0)
    assert invoice.total_excl_tax == pytest.approx(3300.0)
    assert invoice.total_tax == pytest.approx(660.0)
    assert invoice.total_incl_tax == pytest.approx(3960.0)
    assert invoice.raw_data["fob_total"] == pytest.approx(3000.0)
    assert invoice.raw_data["transport_and_customs"] == pytest.approx(300.0)
    assert result.warnings == []


def test_stem_missing_footer_is_computed():
    text = STEM_TEXT.split("TOTAL HT FOB")[0]
    result = StemExtractor().extract(text, "cotation.pdf")
    invoice = result.invoice

    assert invoice.raw_data["fob_total"] == pytest.approx(3000.0)
    assert invoice.raw_data["transport_and_customs"] == pytest.approx(300.0)
    assert invoice.total_excl_tax == pytest.approx(3300.0)
    assert invoice.total_tax == pytest.approx(660.0)
    assert invoice.total_incl_tax == pytest.approx(3960.0)
    assert any("STEM footer totals incomplete" in warning for warning in result.warnings)


# --- generic ---

def test_generic_without_rows_creates_placeholder():
    result = GenericExtractor(supplier="ACME").extract(GENERIC_TEXT, "scan.pdf")
    invoice = result.invoice

    assert invoice.supplier == "ACME"
    assert invoice.document_number == "8842"
    assert invoice.document_date == date(2025, 1, 10)
    assert invoice.total_excl_tax == pytest.approx(120.5)
    assert invoice.total_tax == pytest.approx(24.1)
    assert invoice.total_incl_tax == pytest.approx(144.6)
    assert len(invoice.lines) == 1
    assert invoice.lines[0].description == "Produits ACME"
    assert invoice.lines[0].amount == pytest.approx(120.5)
    assert result.warnings[0].startswith("Generic parsing used for ACME")
    assert any(warning.startswith("No line items detected") for warning in result.warnings)


def test_generic_catalog_backfill_of_truncated_description():
    extractor = GenericExtractor({"REF9": "Full Product Name"}, supplier="ACME")
    line = extractor.extract(TRUNCATED_TEXT, "77.pdf").invoice.lines[0]
    assert line.reference_code == "REF9"
    assert line.description == "Full Product Name"
    assert line.amount == pytest.approx(15.0)


@pytest.mark.parametrize("extractor", [GenericExtractor(), RBDrinksExtractor(), ItalesseExtractor()])
def test_empty_text_keeps_a_placeholder_line(extractor):
    result = extractor.extract("   ", "blank.pdf")

    assert result.failed
    assert "document text is empty" in result.errors[0]
    assert result.invoice.document_number == "BLANK"
    assert len(result.invoice.lines) == 1
    assert result.invoice.lines[0].description == extractor.placeholder_description
    assert result.invoice.lines[0].amount == 0
    assert any(warning.startswith("No line items detected") for warning in result.warnings)


def test_missing_number_and_date_fall_back_with_warnings():
    result = GenericExtractor().extract("Quelques mots\nTOTAL HT : 10,00", "doc-42.pdf")
    assert result.invoice.document_number == "DOC-42"
    assert result.invoice.document_date == date.today()
    assert any("file name" in warning for warning in result.warnings)
    assert any("today's date" in warning for warning in result.warnings)


def test_line_arithmetic_mismatch_is_warned():
    text = "FACTURE N° 5\nDésignation\nWIDGET LARGE MODEL  2  10,00  25,00\nTOTAL HT : 25,00\n"
    result = GenericExtractor().extract(text, "5.pdf")
    assert any(warning.startswith("Line 1") for warning in result.warnings)


# --- shared helpers ---

def test_row_collector_rejects_overlaps_and_duplicates():
    collector = RowCollector(lambda line: (line.reference_code, line.quantity))
    assert collector.add(0, 10, LineItem("A", reference_code="X", quantity=1, amount=5))
    assert not collector.add(5, 15, LineItem("B", reference_code="Y", quantity=1, amount=5))
    assert not collector.add(20, 30, LineItem("C", reference_code="X", quantity=1, amount=7))
    assert collector.add(20, 30, LineItem("D", reference_code="Z", quantity=2, amount=7))
    assert [line.description for line in collector.lines] == ["A", "D"]


@pytest.mark.parametrize("description, known, expected", [
    ("Full Prod", "Full Product Name", True),
    ("Full Product", "Full Product Name", True),
    ("AB-12 / 34-56", "Assiette plate", True),
    ("Assiette plate porcelaine", "Assiette plate", False),
    ("Carafe design soufflée", "Carafe 1L", False),
])
def test_is_low_information(description, known, expected):
    assert is_low_information(description, known) is expected
