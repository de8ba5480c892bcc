import pytest

from facturier.errors import UnknownSupplierError
from facturier.extraction import registry
from facturier.extraction.extractors.generic import GenericExtractor
from facturier.extraction.extractors.lehmann import LehmannExtractor
from facturier.extraction.extractors.rb_drinks import RBDrinksExtractor
from facturier.extraction.registry import (
    available_suppliers,
    canonical_supplier,
    detect_supplier,
    get_extractor,
    register_extractor,
)
from tests.samples import GENERIC_TEXT, ITALESSE_TEXT, LEHMANN_TEXT, RB_DRINKS_TEXT, STEM_TEXT


def test_available_suppliers():
    assert available_suppliers() == ["ITALESSE", "LEHMANN F", "RB DRINKS", "STEM"]


@pytest.mark.parametrize("name, expected", [
    ("lehmann", "LEHMANN F"),
    ("Lehmann Frères", "LEHMANN F"),
    ("rb", "RB DRINKS"),
    ("  rb   drinks ", "RB DRINKS"),
    ("acme", "ACME"),
])
def test_canonical_supplier_aliases(name, expected):
    assert canonical_supplier(name) == expected


def test_get_extractor_for_known_supplier():
    assert isinstance(get_extractor("Lehmann F"), LehmannExtractor)
    assert isinstance(get_extractor("RBDRINKS"), RBDrinksExtractor)


def test_get_extractor_falls_back_to_generic():
    extractor = get_extractor("Acme Verrerie")
    assert isinstance(extractor, GenericExtractor)
    assert extractor.supplier == "ACME VERRERIE"


def test_get_extractor_strict_raises():
    with pytest.raises(UnknownSupplierError) as excinfo:
        get_extractor("Acme", strict=True)
    assert excinfo.value.supplier == "ACME"


def test_get_extractor_passes_catalog_and_patterns():
    extractor = get_extractor("LEHMANN F", {"ver01": "Verre"}, [r"BL\s*(\d+)"])
    assert extractor.catalog == {"VER01": "Verre"}
    assert extractor.learned_number_patterns[0].pattern == r"BL\s*(\d+)"


def test_register_extractor(monkeypatch):
    monkeypatch.setattr(registry, "EXTRACTORS", dict(registry.EXTRACTORS))

    class AcmeExtractor(GenericExtractor):
        supplier = "ACME"

    register_extractor("acme", AcmeExtractor)
    assert isinstance(get_extractor("Acme", strict=True), AcmeExtractor)
    with pytest.raises(ValueError):
        register_extractor("  ", AcmeExtractor)


@pytest.mark.parametrize("text, expected", [
    (RB_DRINKS_TEXT, "RB DRINKS"),
    (LEHMANN_TEXT, "LEHMANN F"),
    (ITALESSE_TEXT, "ITALESSE"),
    (STEM_TEXT, "STEM"),
    (GENERIC_TEXT, None),
    ("Ordine 88\nVELA ICE BUCKET satin", "ITALESSE"),
    ("VELA tumbler", None),
    ("COTATION 12 sans articles", None),
])
def test_detect_supplier_from_content(text, expected):
    assert detect_supplier(text) == expected


@pytest.mark.parametrize("filename, expected", [
    ("RB16749.pdf", "RB DRINKS"),
    ("I0142.pdf", "ITALESSE"),
    ("facture lehmann mars.pdf", "LEHMANN F"),
    ("STEM cotation.pdf", "STEM"),
    ("scan-0001.pdf", None),
])
def test_detect_supplier_from_filename(filename, expected):
    assert detect_supplier("", filename) == expected
