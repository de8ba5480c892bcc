"""French translations for supplier product descriptions.

A static dictionary keyed ``SUPPLIER|REF|DESCRIPTION`` covers known catalogs;
with ``TRANSLATION_MODE=ai`` the remaining lines are sent to Claude in batches.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from anthropic import Anthropic

import config
from facturier.extraction.models import LineItem
from facturier.extraction.normalizer import collapse_whitespace

logger = logging.getLogger(__name__)

_TRANSLATIONS: dict[str, str] = {}
_client: Anthropic | None = None


def _load_translations():
    global _TRANSLATIONS
    if _TRANSLATIONS:
        return
    data_path = Path(__file__).parent / "translations.json"
    if data_path.exists():
        data = json.loads(data_path.read_text(encoding="utf-8"))
        _TRANSLATIONS = {translation_key(*key.split("|", 2)): value
                         for key, value in data.get("translations", {}).items()}


def translation_key(supplier: str, reference: str | None, description: str) -> str:
    return "|".join(collapse_whitespace(part or "").upper() for part in (supplier, reference, description))


def lookup_translation(supplier: str, reference: str | None, description: str) -> str | None:
    _load_translations()
    return _TRANSLATIONS.get(translation_key(supplier, reference, description))


def _get_client() -> Anthropic:
    global _client
    if _client is None:
        if not config.ANTHROPIC_API_KEY:
            raise ValueError("ANTHROPIC_API_KEY not configured")
        _client = Anthropic(api_key=config.ANTHROPIC_API_KEY)
    return _client


def translate_lines(supplier: str, lines: list[LineItem], mode: str | None = None) -> int:
    """Fill ``translated_description`` where it is empty. Returns how many lines were translated."""
    mode = (mode or config.TRANSLATION_MODE).lower()
    if mode == "off":
        return 0

    translated = 0
    pending = []
    for line in lines:
        if line.translated_description or not line.description:
            continue
        known = lookup_translation(supplier, line.reference_code, line.description)
        if known:
            line.translated_description = known
            translated += 1
        else:
            pending.append(line)

    if mode == "ai" and pending and config.ANTHROPIC_API_KEY:
        batch_size = 25
        for i in range(0, len(pending), batch_size):
            translated += _translate_batch(pending[i : i + batch_size])
    return translated


def _translate_batch(lines: list[LineItem]) -> int:
    items = "\n".join(f"{idx}. {line.description}" for idx, line in enumerate(lines))
    prompt = f"""Traduis en francais ces designations de produits d'un fournisseur.
Garde les noms propres, les marques et les references tels quels.

Designations:
{items}

Reponds avec un JSON array. Chaque element doit avoir:
- "index": numero de la designation
- "translation": designation traduite en francais (max 80 caracteres)

Reponds UNIQUEMENT avec le JSON array, sans texte additionnel."""

    try:
        client = _get_client()
        response = client.messages.create(
            model=config.CLAUDE_MODEL,
            max_tokens=2000,
            messages=[{"role": "user", "content": prompt}],
        )

        text = response.content[0].text.strip()
        if "```" in text:
            json_part = text.split("```")[1]
            if json_part.startswith("json"):
                json_part = json_part[4:]
            text = json_part.strip()

        results = json.loads(text)

        count = 0
        for item in results:
            idx = item.get("index")
            translation = item.get("translation")
            if idx is not None and 0 <= idx < len(lines) and translation:
                lines[idx].translated_description = translation
                count += 1

        logger.info(f"AI translated {count} descriptions")
        return count

    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse AI translation response: {e}")
    except Exception as e:
        logger.error(f"AI translation error: {e}")
    return 0
