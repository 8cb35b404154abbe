"""Maintenance of the PDF field mapping table.

Blank templates name their widgets after field keys; option checkboxes are
named ``{field_key}__{option_slug}``. ``suggest_mapping_rows`` derives the
matching table from field definitions, and the CSV helpers move it in and out
of the database.
"""
from __future__ import annotations

import csv
import re
from typing import Any, Iterable, TextIO

from sqlalchemy.orm import Session

from taxintake.models.common import utcnow
from taxintake.models.form_field import FormField
from taxintake.models.pdf_field_mapping import FORMAT_CHECKBOX, FORMAT_TEXT, PdfFieldMapping
from taxintake.services.pdf_fill import MappingRow

CSV_COLUMNS = ("field_key", "pdf_field_name", "format", "constant_value")

_SLUG_RE = re.compile(r"[^a-z0-9]+")
_OPTION_SPLIT_RE = re.compile(r"[\n;]+")


class MappingCsvError(ValueError):
    pass


def slugify_option(value: str) -> str:
    text = str(value or "").strip().lower().replace("&", "and")
    return _SLUG_RE.sub("_", text).strip("_")


def parse_options(raw: Any) -> list[str]:
    if not raw:
        return []
    if isinstance(raw, (list, tuple)):
        items = [str(item) for item in raw]
    else:
        items = _OPTION_SPLIT_RE.split(str(raw))
    return [item.strip() for item in items if str(item).strip()]


def suggest_mapping_rows(fields: Iterable[FormField]) -> list[MappingRow]:
    rows: list[MappingRow] = []
    for f in fields:
        field_key = str(f.field_key or "").strip()
        if not field_key:
            continue
        options = parse_options(f.options)
        if "checkbox" in str(f.input_type or "").lower():
            if options:
                rows.extend(
                    MappingRow(
                        field_key=field_key,
                        pdf_field_name=f"{field_key}__{slugify_option(option)}",
                        format=FORMAT_CHECKBOX,
                        constant_value=option,
                    )
                    for option in options
                )
            else:
                rows.append(MappingRow(field_key=field_key, pdf_field_name=field_key, format=FORMAT_CHECKBOX))
            continue
        rows.append(MappingRow(field_key=field_key, pdf_field_name=field_key, format=FORMAT_TEXT))
    return rows


def write_mapping_csv(rows: Iterable[MappingRow], stream: TextIO) -> int:
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    count = 0
    for row in rows:
        writer.writerow([row.field_key, row.pdf_field_name, row.format or "", row.constant_value or ""])
        count += 1
    return count


def read_mapping_csv(stream: TextIO) -> list[MappingRow]:
    reader = csv.DictReader(stream)
    missing = [column for column in ("field_key", "pdf_field_name") if column not in (reader.fieldnames or [])]
    if missing:
        raise MappingCsvError(f"CSV is missing columns: {', '.join(missing)}")

    rows: list[MappingRow] = []
    seen: set[str] = set()
    for line_no, record in enumerate(reader, start=2):
        field_key = str(record.get("field_key") or "").strip()
        pdf_field_name = str(record.get("pdf_field_name") or "").strip()
        if not field_key and not pdf_field_name:
            continue
        if not field_key or not pdf_field_name:
            raise MappingCsvError(f"line {line_no}: field_key and pdf_field_name are required")
        if pdf_field_name in seen:
            raise MappingCsvError(f"line {line_no}: duplicate pdf_field_name {pdf_field_name!r}")
        seen.add(pdf_field_name)
        rows.append(
            MappingRow(
                field_key=field_key,
                pdf_field_name=pdf_field_name,
                format=str(record.get("format") or "").strip().lower() or None,
                constant_value=str(record.get("constant_value") or "").strip() or None,
            )
        )
    return rows


def upsert_mapping_rows(db: Session, form_code: str, tax_year: int, rows: Iterable[MappingRow]) -> tuple[int, int]:
    created = 0
    updated = 0
    existing = {
        row.pdf_field_name: row
        for row in db.query(PdfFieldMapping)
        .filter(PdfFieldMapping.form_code == str(form_code), PdfFieldMapping.tax_year == int(tax_year))
        .all()
    }

    for item in rows:
        row = existing.get(item.pdf_field_name)
        if row is None:
            row = PdfFieldMapping(
                form_code=str(form_code),
                tax_year=int(tax_year),
                field_key=item.field_key,
                pdf_field_name=item.pdf_field_name,
                format=item.format,
                constant_value=item.constant_value,
            )
            db.add(row)
            existing[item.pdf_field_name] = row
            created += 1
            continue

        changed = False
        for attr in ("field_key", "format", "constant_value"):
            if getattr(row, attr) != getattr(item, attr):
                setattr(row, attr, getattr(item, attr))
                changed = True
        if changed:
            row.updated_at = utcnow()
            db.add(row)
            updated += 1

    db.commit()
    return created, updated
