"""Command-line entry point for the facturier extraction engine."""
# Import encoding fix FIRST so accents in documents never break stdout/stderr
from facturier import encoding_fix

import argparse
import json
import logging
import sys
from pathlib import Path

import config
from facturier.errors import FacturierError
from facturier.extraction.models import Invoice
from facturier.extraction.registry import available_suppliers, canonical_supplier, get_extractor
from facturier.engine import InvoiceEngine
from facturier.storage import SQLiteKeyValueStore

logger = logging.getLogger(__name__)


def _print_json(payload):
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _load_invoice(path: str) -> Invoice:
    return Invoice.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


def cmd_process(engine: InvoiceEngine, args) -> int:
    if args.strict and args.supplier:
        get_extractor(args.supplier, strict=True)
    if args.text:
        path = Path(args.file)
        result = engine.process(path.read_text(encoding="utf-8"), path.name, args.supplier)
    else:
        result = engine.process_file(args.file, args.supplier)
    _print_json(result.to_dict())
    return 1 if result.errors else 0


def cmd_learn(engine: InvoiceEngine, args) -> int:
    original = _load_invoice(args.original)
    corrected = _load_invoice(args.corrected)
    raw_text = Path(args.text).read_text(encoding="utf-8")
    supplier = args.supplier or corrected.supplier or original.supplier
    outcome = engine.learn(supplier, original, corrected, raw_text)
    _print_json({
        "profile_id": outcome.profile.id,
        "created": outcome.created,
        "lines_diffed": outcome.lines_diffed,
        "transformations_added": outcome.transformations_added,
        "extractions_added": outcome.extractions_added,
        "number_pattern": outcome.number_pattern,
    })
    return 0


def cmd_suppliers(engine: InvoiceEngine, args) -> int:
    _print_json(available_suppliers())
    return 0


def cmd_profiles(engine: InvoiceEngine, args) -> int:
    supplier = canonical_supplier(args.supplier)
    _print_json([
        {
            "id": profile.id,
            "document_number": profile.memorized_invoice.document_number if profile.memorized_invoice else None,
            "use_count": profile.use_count,
            "last_used": profile.last_used.isoformat(),
            "signature": sorted(profile.signature),
            "transformations": len(profile.learned_rules.transformations),
            "field_extractions": len(profile.learned_rules.field_extractions),
            "number_patterns": list(profile.learned_rules.number_patterns),
        }
        for profile in engine.profiles.list_profiles(supplier)
    ])
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="facturier", description="Supplier invoice extraction with learned corrections")
    parser.add_argument("--db", default=None, help="SQLite store path (default: FACTURIER_DB_PATH)")
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Logging level")
    commands = parser.add_subparsers(dest="command", required=True)

    process = commands.add_parser("process", help="Extract an invoice and print it as JSON")
    process.add_argument("file", help="PDF document (or text file with --text)")
    process.add_argument("--supplier", help="Supplier name (detected when omitted)")
    process.add_argument("--text", action="store_true", help="FILE already holds the extracted text")
    process.add_argument("--strict", action="store_true", help="Fail if the supplier has no dedicated extractor")
    process.set_defaults(handler=cmd_process)

    learn = commands.add_parser("learn", help="Learn from a corrected invoice")
    learn.add_argument("original", help="Invoice JSON as produced by 'process'")
    learn.add_argument("corrected", help="Invoice JSON after manual correction")
    learn.add_argument("--text", required=True, help="Raw text of the document")
    learn.add_argument("--supplier", help="Supplier name (defaults to the corrected invoice's)")
    learn.set_defaults(handler=cmd_learn)

    suppliers = commands.add_parser("suppliers", help="List suppliers with a dedicated extractor")
    suppliers.set_defaults(handler=cmd_suppliers)

    profiles = commands.add_parser("profiles", help="List learned profiles of a supplier")
    profiles.add_argument("supplier")
    profiles.set_defaults(handler=cmd_profiles)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    encoding_fix.configure_safe_logging(args.log_level.upper())
    encoding_fix.silence_noisy_loggers()

    store = SQLiteKeyValueStore(args.db)
    engine = InvoiceEngine(store)
    try:
        return args.handler(engine, args)
    except (FacturierError, FileNotFoundError) as e:
        logger.error(str(e))
        return 2
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
