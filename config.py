"""Configuration management for the facturier extraction engine."""
import os
from dotenv import load_dotenv

load_dotenv()


def clean_env_value(value):
    """Clean environment variable value - strip whitespace AND quotes.

    Deployment UIs sometimes add quotes around values.
    This function removes them so paths and keys work correctly.
    """
    if not value:
        return ""
    # Strip whitespace first
    value = value.strip()
    # Strip surrounding quotes (single or double)
    if len(value) >= 2:
        if (value.startswith('"') and value.endswith('"')) or \
           (value.startswith("'") and value.endswith("'")):
            value = value[1:-1]
        # Also handle case where only leading quote exists (partial corruption)
        elif value.startswith('"') or value.startswith("'"):
            value = value[1:]
        elif value.endswith('"') or value.endswith("'"):
            value = value[:-1]
    return value.strip()


def _float_env(name, default):
    raw = clean_env_value(os.getenv(name))
    return float(raw) if raw else default


def _int_env(name, default):
    raw = clean_env_value(os.getenv(name))
    return int(raw) if raw else default


# Where the SQLite key-value store lives
DATA_DIR = clean_env_value(os.getenv("DATA_DIR")) or "./data"
DB_PATH = clean_env_value(os.getenv("FACTURIER_DB_PATH")) or os.path.join(DATA_DIR, "facturier.db")

# Minimum Jaccard similarity for a signature match against a stored profile.
# Empirical value, calibrate against a labelled corpus before changing it.
PROFILE_SIMILARITY_THRESHOLD = _float_env("PROFILE_SIMILARITY_THRESHOLD", 0.4)

# Reference catalog merge policy: "longest" keeps the longer description,
# "latest" always keeps the most recent one
REFERENCE_MERGE_POLICY = (clean_env_value(os.getenv("REFERENCE_MERGE_POLICY")) or "longest").lower()

# How many corrections must agree before a removed fragment becomes a regex rule
RULE_MIN_SUPPORT = _int_env("RULE_MIN_SUPPORT", 2)

# Tolerance used when reconciling amounts (line arithmetic, totals)
AMOUNT_TOLERANCE = _float_env("AMOUNT_TOLERANCE", 0.01)

# Length of the raw text excerpt kept on each invoice for debugging
RAW_EXCERPT_LENGTH = _int_env("RAW_EXCERPT_LENGTH", 2000)

# Number of leading line descriptions hashed into a document signature
SIGNATURE_DESCRIPTION_SAMPLE = _int_env("SIGNATURE_DESCRIPTION_SAMPLE", 3)

# Description translation: "off", "dictionary" or "ai"
TRANSLATION_MODE = (clean_env_value(os.getenv("TRANSLATION_MODE")) or "dictionary").lower()

# Anthropic API Key for Claude (only needed when TRANSLATION_MODE=ai)
ANTHROPIC_API_KEY = clean_env_value(os.getenv("ANTHROPIC_API_KEY"))
CLAUDE_MODEL = clean_env_value(os.getenv("CLAUDE_MODEL")) or "claude-sonnet-4-5-20250929"

LOG_LEVEL = (clean_env_value(os.getenv("LOG_LEVEL")) or "INFO").upper()
