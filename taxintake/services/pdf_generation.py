from __future__ import annotations

import logging
import unicodedata
from dataclasses import dataclass
from typing import Any

from taxintake.core.config import settings
from taxintake.models.filing import Filing
from taxintake.services.filing_exceptions import MappingTableMissingError, UnsupportedFormError
from taxintake.services.filing_store import FilingStore, MappingRegistry
from taxintake.services.pdf_fill import FillReport, fill_document, inspect_template
from taxintake.services.template_store import TemplateStore

_LOG = logging.getLogger("taxintake.pdf")


def _ascii_text(value: Any) -> str:
    text = str(value or "")
    normalized = unicodedata.normalize("NFKD", text)
    return normalized.encode("ascii", "ignore").decode("ascii")


def pdf_file_name(filing: Filing) -> str:
    return f"{filing.form_code}_{filing.tax_year}_{filing.id}.pdf"


def content_disposition(file_name: str, inline: bool = False) -> str:
    disposition = "inline" if inline else "attachment"
    return f'{disposition}; filename="{_ascii_text(file_name)}"'


def report_headers(report: FillReport, sample_limit: int | None = None) -> dict[str, str]:
    """Fill report as response headers. Header values must stay latin-1."""
    limit = settings.PDF_MISSING_SAMPLE_LIMIT if sample_limit is None else sample_limit
    return {
        "X-Filled-Text": str(report.filled_text),
        "X-Filled-Checkbox": str(report.filled_checkbox),
        "X-Missing-Text-In-PDF-Count": str(len(report.missing_text_in_pdf)),
        "X-Missing-Checkbox-In-PDF-Count": str(len(report.missing_checkbox_in_pdf)),
        "X-Missing-Text-In-PDF-Sample": ",".join(_ascii_text(n) for n in report.missing_text_in_pdf[:limit]),
        "X-Missing-Checkbox-In-PDF-Sample": ",".join(
            _ascii_text(n) for n in report.missing_checkbox_in_pdf[:limit]
        ),
    }


@dataclass
class GeneratedPdf:
    filing: Filing
    pdf_bytes: bytes
    report: FillReport
    inline: bool = False

    @property
    def file_name(self) -> str:
        return pdf_file_name(self.filing)

    def headers(self) -> dict[str, str]:
        headers = {"Content-Disposition": content_disposition(self.file_name, self.inline)}
        headers.update(report_headers(self.report))
        return headers


def ensure_supported_form(filing: Filing) -> None:
    supported = settings.pdf_supported_forms_list
    if str(filing.form_code) not in supported:
        raise UnsupportedFormError(
            f"PDF export supports forms {', '.join(supported) or '-'}; got {filing.form_code}"
        )


def generate_pdf(
    filing_id: Any,
    *,
    filings: FilingStore,
    mappings: MappingRegistry,
    templates: TemplateStore,
    inline: bool = False,
) -> GeneratedPdf:
    """Fill the filing's blank form from its persisted answers.

    Unmapped fields never fail the request; they are listed on the report.
    """
    filing = filings.get_filing(filing_id)
    ensure_supported_form(filing)
    answers = filings.get_answers(filing.id)
    mapping_rows = mappings.get_mapping_rows(filing.form_code, filing.tax_year)
    template_bytes = templates.load_template(filing.form_code, filing.tax_year)

    result = fill_document(template_bytes, answers, mapping_rows)
    report = result.report
    if not report.complete:
        limit = settings.PDF_MISSING_SAMPLE_LIMIT
        _LOG.warning(
            "pdf fill incomplete filing_id=%s missing_text=%s missing_checkbox=%s",
            filing.id,
            report.missing_text_in_pdf[:limit],
            report.missing_checkbox_in_pdf[:limit],
        )
    return GeneratedPdf(filing=filing, pdf_bytes=result.pdf_bytes, report=report, inline=inline)


def dump_template(
    filing_id: Any,
    *,
    filings: FilingStore,
    mappings: MappingRegistry,
    templates: TemplateStore,
    name_limit: int | None = None,
) -> dict[str, Any]:
    """Widget listing of the filing's template, checked against its mapping table."""
    limit = settings.PDF_DUMP_NAME_LIMIT if name_limit is None else name_limit
    filing = filings.get_filing(filing_id)
    ensure_supported_form(filing)
    inventory = inspect_template(templates.load_template(filing.form_code, filing.tax_year))
    try:
        mapping_rows = mappings.get_mapping_rows(filing.form_code, filing.tax_year)
    except MappingTableMissingError:
        mapping_rows = []

    names = inventory.names
    known = set(names)
    checkbox_rows = [row for row in mapping_rows if row.is_checkbox]
    unresolved = [row.pdf_field_name for row in mapping_rows if row.pdf_field_name not in known]
    return {
        "filing_id": str(filing.id),
        "form_code": filing.form_code,
        "tax_year": filing.tax_year,
        "template": templates.template_path(filing.form_code, filing.tax_year).name,
        "pdf_field_count": len(names),
        "pdf_field_kinds": inventory.kind_counts(),
        "pdf_field_names_sample": names[:limit],
        "mapping_rows": len(mapping_rows),
        "checkbox_mapping_rows": len(checkbox_rows),
        "mapping_names_missing_in_pdf_count": len(unresolved),
        "mapping_names_missing_in_pdf_sample": unresolved[:limit],
    }
