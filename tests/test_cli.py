import json

import pytest

from facturier.main import build_parser, main
from tests.samples import NOISY_TEXT, RB_DRINKS_TEXT


@pytest.fixture
def db(tmp_path):
    return str(tmp_path / "facturier.db")


def _run(capsys, *argv):
    code = main(list(argv))
    return code, capsys.readouterr().out


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_suppliers(capsys, db):
    code, out = _run(capsys, "--db", db, "suppliers")
    assert code == 0
    assert json.loads(out) == ["ITALESSE", "LEHMANN F", "RB DRINKS", "STEM"]


def test_process_text_file(capsys, db, tmp_path):
    source = tmp_path / "RB16749.txt"
    source.write_text(RB_DRINKS_TEXT, encoding="utf-8")

    code, out = _run(capsys, "--db", db, "process", str(source), "--text")

    assert code == 0
    payload = json.loads(out)
    assert payload["invoice"]["supplier"] == "RB DRINKS"
    assert payload["invoice"]["document_number"] == "F16749"
    assert len(payload["invoice"]["lines"]) == 3


def test_process_strict_unknown_supplier(capsys, db, tmp_path):
    source = tmp_path / "doc.txt"
    source.write_text(NOISY_TEXT, encoding="utf-8")
    code, out = _run(capsys, "--db", db, "process", str(source), "--text", "--supplier", "ACME", "--strict")
    assert code == 2
    assert out == ""


def test_process_missing_pdf(capsys, db, tmp_path):
    code, _ = _run(capsys, "--db", db, "process", str(tmp_path / "missing.pdf"))
    assert code == 2


def test_learn_then_replay(capsys, db, tmp_path):
    source = tmp_path / "F12.txt"
    source.write_text(NOISY_TEXT, encoding="utf-8")
    _, out = _run(capsys, "--db", db, "process", str(source), "--text", "--supplier", "ACME")
    original = json.loads(out)["invoice"]

    corrected = json.loads(json.dumps(original))
    corrected["lines"][0]["description"] = "PROD A"
    corrected["lines"][0]["approval_code"] = "1234-5678-1234"
    original_path = tmp_path / "original.json"
    corrected_path = tmp_path / "corrected.json"
    original_path.write_text(json.dumps(original), encoding="utf-8")
    corrected_path.write_text(json.dumps(corrected), encoding="utf-8")

    code, out = _run(capsys, "--db", db, "learn", str(original_path), str(corrected_path), "--text", str(source))
    assert code == 0
    learned = json.loads(out)
    assert learned["created"] is True
    assert learned["extractions_added"] == 1

    _, out = _run(capsys, "--db", db, "profiles", "acme")
    profiles = json.loads(out)
    assert [p["id"] for p in profiles] == [learned["profile_id"]]
    assert profiles[0]["document_number"] == "F12"

    _, out = _run(capsys, "--db", db, "process", str(source), "--text", "--supplier", "ACME")
    replay = json.loads(out)
    assert replay["replay_mode"] == "full"
    assert replay["invoice"]["lines"][0]["description"] == "PROD A"
