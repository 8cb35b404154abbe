from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, Mapping

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from taxintake.core.deps import firm_member
from taxintake.db.session import get_db
from taxintake.models.filing import Filing
from taxintake.models.form_answer import ANSWER_SOURCE_LAWYER, FormAnswer
from taxintake.models.form_field import FormField
from taxintake.models.pdf_field_mapping import PdfFieldMapping
from taxintake.services.calculations import apply_calculations
from taxintake.services.filing_exceptions import FilingNotFoundError, MappingTableMissingError
from taxintake.services.pdf_fill import MappingRow

_LOG = logging.getLogger("taxintake.filings")


def _as_uuid(raw: Any) -> uuid.UUID | None:
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except (TypeError, ValueError):
        return None


class FilingStore:
    """Filings and their answers, optionally scoped to one firm.

    A filing of another firm behaves exactly like a filing that does not exist.
    """

    def __init__(self, db: Session, firm_id: uuid.UUID | None = None):
        self.db = db
        self.firm_id = firm_id

    def get_filing(self, filing_id: Any) -> Filing:
        filing_uuid = _as_uuid(filing_id)
        filing = self.db.get(Filing, filing_uuid) if filing_uuid else None
        if filing is None or (self.firm_id is not None and filing.firm_id != self.firm_id):
            raise FilingNotFoundError(f"Filing not found: {filing_id}")
        return filing

    def get_answers(self, filing_id: uuid.UUID) -> dict[str, Any]:
        rows = (
            self.db.query(FormAnswer.field_key, FormAnswer.value)
            .filter(FormAnswer.filing_id == filing_id)
            .order_by(FormAnswer.field_key.asc())
            .all()
        )
        return {field_key: value for field_key, value in rows}

    def save_answers(
        self,
        filing_id: uuid.UUID,
        answers: Mapping[str, Any],
        *,
        fields: Iterable[FormField] = (),
        source: str = ANSWER_SOURCE_LAWYER,
        updated_by: str | None = None,
    ) -> dict[str, Any]:
        """Replace the whole answer set of a filing in one transaction.

        Calculated fields are recomputed from ``fields`` first, so whatever the
        caller sent for them is discarded.
        """
        values = apply_calculations(fields, answers)
        try:
            self.db.query(FormAnswer).filter(FormAnswer.filing_id == filing_id).delete(synchronize_session=False)
            self.db.add_all(
                FormAnswer(
                    filing_id=filing_id,
                    field_key=field_key,
                    value=value,
                    source=source,
                    updated_by=updated_by,
                )
                for field_key, value in values.items()
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            _LOG.exception("answer save rolled back filing_id=%s", filing_id)
            raise
        _LOG.info("answers replaced filing_id=%s count=%s source=%s", filing_id, len(values), source)
        return values

    def merge_answers(
        self,
        filing_id: uuid.UUID,
        changes: Mapping[str, Any],
        *,
        fields: Iterable[FormField] = (),
        source: str = ANSWER_SOURCE_LAWYER,
        updated_by: str | None = None,
    ) -> dict[str, Any]:
        """Upsert some answers, then re-persist every calculated field."""
        fields = list(fields)
        current = self.get_answers(filing_id)
        merged = apply_calculations(fields, {**current, **changes})
        touched = set(changes) | {f.field_key for f in fields if f.is_calculated}
        touched &= set(merged)

        existing = {
            row.field_key: row
            for row in self.db.query(FormAnswer)
            .filter(FormAnswer.filing_id == filing_id, FormAnswer.field_key.in_(touched))
            .all()
        }
        try:
            for field_key in sorted(touched):
                row = existing.get(field_key)
                if row is None:
                    row = FormAnswer(filing_id=filing_id, field_key=field_key)
                elif field_key not in changes and row.value == merged[field_key]:
                    continue
                row.value = merged[field_key]
                row.source = source
                row.updated_by = updated_by
                self.db.add(row)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            _LOG.exception("answer merge rolled back filing_id=%s", filing_id)
            raise
        return merged

    def upsert_answer(
        self,
        filing_id: uuid.UUID,
        field_key: str,
        value: Any,
        *,
        fields: Iterable[FormField] = (),
        source: str = ANSWER_SOURCE_LAWYER,
        updated_by: str | None = None,
    ) -> dict[str, Any]:
        return self.merge_answers(filing_id, {field_key: value}, fields=fields, source=source, updated_by=updated_by)


class FieldRegistry:
    def __init__(self, db: Session):
        self.db = db

    def get_field_definitions(self, form_code: str) -> list[FormField]:
        return (
            self.db.query(FormField)
            .filter(FormField.form_code == str(form_code))
            .order_by(
                FormField.section.asc(),
                FormField.sort_order.is_(None),
                FormField.sort_order.asc(),
                FormField.field_key.asc(),
            )
            .all()
        )


class MappingRegistry:
    def __init__(self, db: Session):
        self.db = db

    def get_mapping_rows(self, form_code: str, tax_year: int) -> list[MappingRow]:
        rows = (
            self.db.query(PdfFieldMapping)
            .filter(PdfFieldMapping.form_code == str(form_code), PdfFieldMapping.tax_year == int(tax_year))
            .order_by(PdfFieldMapping.field_key.asc(), PdfFieldMapping.pdf_field_name.asc())
            .all()
        )
        if not rows:
            raise MappingTableMissingError(f"No PDF field mappings for form {form_code} ({tax_year})")
        return [
            MappingRow(
                field_key=row.field_key,
                pdf_field_name=row.pdf_field_name,
                format=row.format,
                constant_value=row.constant_value,
            )
            for row in rows
        ]

    def get_checkbox_mappings(self, form_code: str, tax_year: int) -> list[MappingRow]:
        return [row for row in self.get_mapping_rows(form_code, tax_year) if row.is_checkbox]


def get_firm_filing_store(db: Session = Depends(get_db), member: dict = Depends(firm_member)) -> FilingStore:
    return FilingStore(db, firm_id=member["firm_id"])


def get_field_registry(db: Session = Depends(get_db)) -> FieldRegistry:
    return FieldRegistry(db)


def get_mapping_registry(db: Session = Depends(get_db)) -> MappingRegistry:
    return MappingRegistry(db)
