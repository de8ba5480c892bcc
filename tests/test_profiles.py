import json
from datetime import date, datetime

from facturier.extraction.models import Invoice, LineItem
from facturier.learning.models import FieldExtraction, LearnedRules, ParsingProfile, TextTransformation
from facturier.storage import profiles_key


def _profile(profile_id="acme-1", supplier="ACME", number="F12", last_used=datetime(2025, 3, 1, 10, 0)):
    invoice = Invoice(
        supplier=supplier, document_number=number, document_date=date(2025, 3, 1),
        source_filename=f"{number}.pdf",
        lines=[LineItem("Plateau inox", reference_code="PLA10", quantity=2, unit_price=5, amount=10)],
        total_excl_tax=10.0, total_tax=2.0, total_incl_tax=12.0,
    )
    rules = LearnedRules(
        transformations=[TextTransformation(field="description", pattern="EXTRA")],
        field_extractions=[FieldExtraction(target="approval_code", pattern=r"PROT\.\s*(\d+\-\d+)")],
        number_patterns=[r"Bon\s+n\s*([A-Z]+\d+)"],
        structure_lines=list(invoice.lines),
        example_number=number,
        corrected_field_counts={"description": 1},
    )
    return ParsingProfile(
        id=profile_id, supplier=supplier, signature=frozenset({"supplier-acme", "lines-1"}),
        memorized_invoice=invoice, learned_rules=rules, last_used=last_used, use_count=3,
        created_at=datetime(2025, 1, 1),
    )


def test_profile_round_trip(profile_store):
    profile = _profile()
    profile_store.save("ACME", [profile])

    loaded = profile_store.get("ACME", "acme-1")
    assert loaded == profile
    assert loaded.memorized_invoice.lines[0].reference_code == "PLA10"
    assert loaded.learned_rules.field_extractions[0].target == "approval_code"


def test_profiles_are_partitioned_by_supplier(profile_store):
    profile_store.save("ACME", [_profile()])
    assert profile_store.load("OTHER") == []


def test_list_profiles_most_recent_first(profile_store):
    old = _profile("acme-1", last_used=datetime(2025, 1, 1))
    new = _profile("acme-2", number="F13", last_used=datetime(2025, 6, 1))
    profile_store.save("ACME", [old, new])
    assert [p.id for p in profile_store.list_profiles("ACME")] == ["acme-2", "acme-1"]


def test_malformed_profile_is_skipped(store, profile_store):
    good = _profile().to_dict()
    missing_signature = dict(good, id="acme-2")
    del missing_signature["signature"]
    bad_date = dict(good, id="acme-3", last_used="yesterday")
    store.set(profiles_key("ACME"), json.dumps([good, missing_signature, bad_date]))

    assert [p.id for p in profile_store.load("ACME")] == ["acme-1"]


def test_next_profile_id(profile_store):
    profiles = [_profile("acme-1"), _profile("acme-4"), _profile("custom")]
    assert profile_store.next_profile_id("ACME", profiles) == "acme-5"
    assert profile_store.next_profile_id("LEHMANN F", []) == "lehmann-f-1"


def test_record_use(profile_store):
    profile_store.save("ACME", [_profile()])
    when = datetime(2025, 7, 1, 9, 30)

    updated = profile_store.record_use("ACME", "acme-1", when)
    assert updated.use_count == 4
    assert profile_store.get("ACME", "acme-1").last_used == when
    assert profile_store.record_use("ACME", "missing") is None


def test_upsert_delete_and_clear(profile_store):
    profile_store.upsert(_profile("acme-1"))
    profile_store.upsert(_profile("acme-2", number="F13"))
    replacement = _profile("acme-1", number="F99")
    profile_store.upsert(replacement)

    assert profile_store.get("ACME", "acme-1").memorized_invoice.document_number == "F99"
    assert profile_store.delete_profile("ACME", "acme-2")
    assert not profile_store.delete_profile("ACME", "acme-2")
    assert profile_store.clear_supplier("ACME") == 1
    assert profile_store.load("ACME") == []
