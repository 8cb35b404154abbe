from __future__ import annotations

import argparse
import sys
from pathlib import Path

from taxintake.db.session import SessionLocal
from taxintake.services.filing_exceptions import PdfGenerationError
from taxintake.services.filing_store import FieldRegistry, MappingRegistry
from taxintake.services.pdf_fill import inspect_template
from taxintake.services.pdf_mappings import (
    MappingCsvError,
    read_mapping_csv,
    suggest_mapping_rows,
    upsert_mapping_rows,
    write_mapping_csv,
)
from taxintake.services.template_store import get_template_store


def _suggest(args: argparse.Namespace) -> int:
    with SessionLocal() as db:
        fields = FieldRegistry(db).get_field_definitions(args.form)
    if not fields:
        print(f"no field definitions for form {args.form}", file=sys.stderr)
        return 1
    rows = suggest_mapping_rows(fields)
    with open(args.out, "w", encoding="utf-8", newline="") as fh:
        count = write_mapping_csv(rows, fh)
    print(f"mapping suggestions written: {args.out} rows={count}")
    return 0


def _import(args: argparse.Namespace) -> int:
    try:
        with open(args.csv, encoding="utf-8", newline="") as fh:
            rows = read_mapping_csv(fh)
    except MappingCsvError as exc:
        print(f"invalid mapping csv: {exc}", file=sys.stderr)
        return 1
    with SessionLocal() as db:
        created, updated = upsert_mapping_rows(db, args.form, args.year, rows)
    print(f"mapping import done: created={created}, updated={updated}, rows={len(rows)}")
    return 0


def _export(args: argparse.Namespace) -> int:
    try:
        with SessionLocal() as db:
            rows = MappingRegistry(db).get_mapping_rows(args.form, args.year)
    except PdfGenerationError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    with open(args.out, "w", encoding="utf-8", newline="") as fh:
        count = write_mapping_csv(rows, fh)
    print(f"mapping export done: {args.out} rows={count}")
    return 0


def _check(args: argparse.Namespace) -> int:
    """Compare the mapping table with the widgets of the template on disk."""
    try:
        template = (
            Path(args.template).read_bytes()
            if args.template
            else get_template_store().load_template(args.form, args.year)
        )
        inventory = inspect_template(template)
        with SessionLocal() as db:
            rows = MappingRegistry(db).get_mapping_rows(args.form, args.year)
    except (PdfGenerationError, OSError) as exc:
        print(str(exc), file=sys.stderr)
        return 1
    known = set(inventory.names)
    unresolved = [row.pdf_field_name for row in rows if row.pdf_field_name not in known]
    print(f"template fields: {len(known)} {inventory.kind_counts()}")
    print(f"mapping rows: {len(rows)}, missing in template: {len(unresolved)}")
    for name in unresolved:
        print(f"  - {name}")
    return 1 if unresolved else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Maintain the PDF field mapping table")
    sub = parser.add_subparsers(dest="command", required=True)

    suggest = sub.add_parser("suggest", help="Write mapping rows derived from field definitions to CSV")
    suggest.add_argument("--form", required=True, help="Form code, e.g. 1041")
    suggest.add_argument("--out", required=True, help="Output CSV path")
    suggest.set_defaults(handler=_suggest)

    importer = sub.add_parser("import", help="Upsert mapping rows from CSV")
    importer.add_argument("--form", required=True)
    importer.add_argument("--year", required=True, type=int)
    importer.add_argument("--csv", required=True, help="CSV with field_key,pdf_field_name,format,constant_value")
    importer.set_defaults(handler=_import)

    export = sub.add_parser("export", help="Write the stored mapping table to CSV")
    export.add_argument("--form", required=True)
    export.add_argument("--year", required=True, type=int)
    export.add_argument("--out", required=True)
    export.set_defaults(handler=_export)

    check = sub.add_parser("check", help="List mapping rows whose widget is missing from the template")
    check.add_argument("--form", required=True)
    check.add_argument("--year", required=True, type=int)
    check.add_argument("--template", help="Template path (defaults to the template store)")
    check.set_defaults(handler=_check)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
