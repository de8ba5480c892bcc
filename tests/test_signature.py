from datetime import date

from facturier.extraction.models import Invoice, LineItem
from facturier.learning.signature import compute_signature, jaccard


def _invoice(number="F12", lines=None, supplier="RB DRINKS"):
    return Invoice(supplier=supplier, document_number=number, document_date=date(2025, 1, 1),
                   lines=lines if lines is not None else [LineItem("Bol blanc", approval_code="3281")])


def test_signature_tokens():
    signature = compute_signature(_invoice(), "FACTURE  F12\nRemise   TVA (20%)\nTotal TTC")

    assert "supplier-rb-drinks" in signature
    assert "lines-1" in signature
    assert "with-approval-code" in signature
    assert "without-logo" in signature
    assert "numero-alpha-prefix" in signature
    assert {"kw-facture", "kw-remise", "kw-tva", "kw-total-ttc"} <= signature
    assert "kw-fob" not in signature
    assert any(token.startswith("desc-") for token in signature)


def test_signature_is_deterministic():
    invoice = _invoice()
    assert compute_signature(invoice, "Facture") == compute_signature(invoice.copy(), "Facture")


def test_line_count_buckets():
    many = [LineItem(f"Article {i}") for i in range(25)]
    assert "lines-21-50" in compute_signature(_invoice(lines=many), "")
    assert "lines-0" in compute_signature(_invoice(lines=[]), "")


def test_number_shape_tokens():
    assert "numero-slash" in compute_signature(_invoice("2025/0142"), "")
    assert "numero-digits" in compute_signature(_invoice("8842"), "")
    assert "numero-missing" in compute_signature(_invoice(""), "")


def test_description_hash_uses_only_first_lines():
    head = [LineItem("A"), LineItem("B"), LineItem("C")]
    one = compute_signature(_invoice(lines=head + [LineItem("D")]), "", description_sample=3)
    two = compute_signature(_invoice(lines=head + [LineItem("E")]), "", description_sample=3)
    assert one == two


def test_jaccard():
    assert jaccard(frozenset(), frozenset()) == 1.0
    assert jaccard({"a", "b"}, {"b", "c"}) == 1 / 3
    assert jaccard({"a"}, {"a"}) == 1.0
    assert jaccard({"a"}, set()) == 0.0


def test_signature_ignores_incidental_whitespace():
    invoice = _invoice()
    spaced = compute_signature(invoice, "FACTURE  F12\n\nRemise\t\tTVA (20%)\f Total   TTC")
    compact = compute_signature(invoice, "FACTURE F12 Remise TVA (20%) Total TTC")
    assert spaced == compact
    assert "kw-total-ttc" in spaced


def test_jaccard_is_symmetric():
    pairs = [({"a", "b"}, {"b", "c", "d"}), ({"a"}, set()), (frozenset(), frozenset()), ({"x", "y"}, {"x", "y"})]
    for a, b in pairs:
        assert jaccard(a, b) == jaccard(b, a)
