from types import SimpleNamespace

import pytest

import config
from facturier.extraction import translation
from facturier.extraction.models import LineItem
from facturier.extraction.translation import lookup_translation, translate_lines, translation_key


class FakeMessages:
    def __init__(self, reply):
        self.reply = reply
        self.prompts = []

    def create(self, **kwargs):
        self.prompts.append(kwargs["messages"][0]["content"])
        if isinstance(self.reply, Exception):
            raise self.reply
        return SimpleNamespace(content=[SimpleNamespace(text=self.reply)])


@pytest.fixture
def fake_client(monkeypatch):
    def install(reply):
        client = SimpleNamespace(messages=FakeMessages(reply))
        monkeypatch.setattr(config, "ANTHROPIC_API_KEY", "test-key")
        monkeypatch.setattr(translation, "_get_client", lambda: client)
        return client
    return install


def test_translation_key_is_normalized():
    assert translation_key("stem", " souv 1 ", "Poncho  child bleu") == "STEM|SOUV 1|PONCHO CHILD BLEU"


def test_lookup_translation():
    assert lookup_translation("STEM", "SOUV 1", "poncho child bleu") == "Poncho enfant bleu"
    assert lookup_translation("STEM", "SOUV 1", "unknown product") is None


def test_dictionary_mode_keeps_existing_translations():
    lines = [
        LineItem("PONCHO CHILD BLEU", reference_code="SOUV 1"),
        LineItem("BATH ROBE MAN", reference_code="3690", translated_description="Peignoir (manuel)"),
        LineItem("MYSTERY ITEM", reference_code="9999"),
    ]
    assert translate_lines("STEM", lines, "dictionary") == 1
    assert lines[0].translated_description == "Poncho enfant bleu"
    assert lines[1].translated_description == "Peignoir (manuel)"
    assert lines[2].translated_description is None


def test_off_mode_translates_nothing():
    lines = [LineItem("PONCHO CHILD BLEU", reference_code="SOUV 1")]
    assert translate_lines("STEM", lines, "off") == 0
    assert lines[0].translated_description is None


def test_ai_mode_translates_remaining_lines(fake_client):
    client = fake_client('```json\n[{"index": 0, "translation": "Article mystère"}]\n```')
    lines = [LineItem("PONCHO CHILD BLEU", reference_code="SOUV 1"), LineItem("MYSTERY ITEM", reference_code="9999")]

    assert translate_lines("STEM", lines, "ai") == 2
    assert lines[1].translated_description == "Article mystère"
    assert "MYSTERY ITEM" in client.messages.prompts[0]
    assert "PONCHO" not in client.messages.prompts[0]


def test_ai_errors_are_logged_not_raised(fake_client):
    fake_client(RuntimeError("API unavailable"))
    lines = [LineItem("MYSTERY ITEM", reference_code="9999")]

    assert translate_lines("STEM", lines, "ai") == 0
    assert lines[0].translated_description is None


def test_ai_invalid_json_is_ignored(fake_client):
    fake_client("Je ne peux pas traduire ces articles.")
    lines = [LineItem("MYSTERY ITEM", reference_code="9999")]
    assert translate_lines("STEM", lines, "ai") == 0


def test_ai_mode_without_key_skips_calls(monkeypatch):
    monkeypatch.setattr(config, "ANTHROPIC_API_KEY", "")
    lines = [LineItem("MYSTERY ITEM", reference_code="9999")]
    assert translate_lines("STEM", lines, "ai") == 0
