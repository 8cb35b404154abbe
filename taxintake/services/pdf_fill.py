from __future__ import annotations

import io
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Sequence

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from pypdf.generic import BooleanObject, DictionaryObject, NameObject, TextStringObject

from taxintake.models.pdf_field_mapping import FORMAT_CHECKBOX
from taxintake.services.answer_values import (
    answer_to_primitive,
    answer_to_text,
    is_truthy_yes,
    matches_option,
)
from taxintake.services.filing_exceptions import TemplateLoadError

_LOG = logging.getLogger("taxintake.pdf")

# AcroForm /Ff bits for /Btn fields
FF_RADIO = 1 << 15
FF_PUSHBUTTON = 1 << 16

OFF_STATE = NameObject("/Off")
DEFAULT_ON_STATE = NameObject("/Yes")


@dataclass(frozen=True)
class MappingRow:
    field_key: str
    pdf_field_name: str
    format: str | None = None
    constant_value: str | None = None

    @property
    def is_checkbox(self) -> bool:
        return str(self.format or "").strip().lower() == FORMAT_CHECKBOX


@dataclass
class FillReport:
    filled_text: int = 0
    filled_checkbox: int = 0
    missing_text_in_pdf: list[str] = field(default_factory=list)
    missing_checkbox_in_pdf: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing_text_in_pdf and not self.missing_checkbox_in_pdf

    def to_public_dict(self, sample_limit: int = 25) -> dict[str, Any]:
        return {
            "filled_text": self.filled_text,
            "filled_checkbox": self.filled_checkbox,
            "missing_text_in_pdf_count": len(self.missing_text_in_pdf),
            "missing_checkbox_in_pdf_count": len(self.missing_checkbox_in_pdf),
            "missing_text_in_pdf_sample": self.missing_text_in_pdf[:sample_limit],
            "missing_checkbox_in_pdf_sample": self.missing_checkbox_in_pdf[:sample_limit],
        }


@dataclass
class FillResult:
    pdf_bytes: bytes
    report: FillReport


@dataclass
class PdfFormField:
    name: str
    node: DictionaryObject
    field_type: str | None
    flags: int

    @property
    def kind(self) -> str:
        if self.field_type == "/Tx":
            return "text"
        if self.field_type == "/Btn":
            if self.flags & FF_RADIO:
                return "radio"
            if self.flags & FF_PUSHBUTTON:
                return "button"
            return "checkbox"
        if self.field_type == "/Ch":
            return "choice"
        if self.field_type == "/Sig":
            return "signature"
        return "other"

    def widgets(self) -> list[DictionaryObject]:
        kids = _resolve(self.node.get("/Kids"))
        if not kids:
            return [self.node]
        return [_resolve(kid) for kid in kids]


@dataclass
class TemplateInventory:
    fields: list[PdfFormField]

    @property
    def names(self) -> list[str]:
        return [f.name for f in self.fields]

    def kind_counts(self) -> dict[str, int]:
        return dict(Counter(f.kind for f in self.fields))


def _resolve(obj: Any) -> Any:
    if obj is None:
        return None
    return obj.get_object() if hasattr(obj, "get_object") else obj


def _iter_terminal_fields(
    nodes: Iterable[Any] | None,
    parent_name: str = "",
    inherited_type: str | None = None,
    inherited_flags: int = 0,
    seen: set[int] | None = None,
) -> Iterator[PdfFormField]:
    if seen is None:
        seen = set()
    for ref in nodes or []:
        node = _resolve(ref)
        if not isinstance(node, DictionaryObject) or id(node) in seen:
            continue
        seen.add(id(node))

        partial = _resolve(node.get("/T"))
        if partial is None:
            name = parent_name
        else:
            name = f"{parent_name}.{partial}" if parent_name else str(partial)
        field_type = _resolve(node.get("/FT")) or inherited_type
        flags = int(_resolve(node.get("/Ff")) or inherited_flags or 0)

        kids = [_resolve(kid) for kid in (_resolve(node.get("/Kids")) or [])]
        child_fields = [kid for kid in kids if isinstance(kid, DictionaryObject) and "/T" in kid]
        if child_fields:
            yield from _iter_terminal_fields(child_fields, name, field_type, flags, seen)
            continue
        if not name:
            continue
        yield PdfFormField(
            name=name,
            node=node,
            field_type=str(field_type) if field_type is not None else None,
            flags=flags,
        )


def _read_template(template_bytes: bytes) -> PdfReader:
    if not template_bytes:
        raise TemplateLoadError("PDF template is empty")
    try:
        reader = PdfReader(io.BytesIO(template_bytes))
        encrypted = reader.is_encrypted
    except (PyPdfError, ValueError, KeyError, OSError) as exc:
        raise TemplateLoadError(f"Failed to parse PDF template: {exc}") from exc
    if encrypted:
        raise TemplateLoadError("Encrypted PDF templates are not supported")
    return reader


def _acroform_fields(root: DictionaryObject) -> list[PdfFormField]:
    acro_form = _resolve(root.get("/AcroForm"))
    if not isinstance(acro_form, DictionaryObject):
        raise TemplateLoadError("PDF template has no AcroForm")
    return list(_iter_terminal_fields(_resolve(acro_form.get("/Fields"))))


def inspect_template(template_bytes: bytes) -> TemplateInventory:
    """List every fillable field of a template. Read-only."""
    reader = _read_template(template_bytes)
    try:
        return TemplateInventory(fields=_acroform_fields(reader.root_object))
    except (PyPdfError, KeyError) as exc:
        raise TemplateLoadError(f"Failed to read AcroForm fields: {exc}") from exc


def _on_state(widget: DictionaryObject) -> NameObject | None:
    appearance = _resolve(widget.get("/AP"))
    if not isinstance(appearance, DictionaryObject):
        return None
    normal = _resolve(appearance.get("/N"))
    if not isinstance(normal, DictionaryObject):
        return None
    for state in normal.keys():
        if state != OFF_STATE:
            return NameObject(state)
    return None


def _set_text(pdf_field: PdfFormField, text: str) -> None:
    pdf_field.node[NameObject("/V")] = TextStringObject(text)


def _render_text_appearances(
    writer: PdfWriter,
    pdf_fields: Sequence[PdfFormField],
    text_values: Mapping[str, str],
) -> None:
    """Build ``/AP`` streams for filled text widgets, page by page.

    pypdf also matches a key against the bare ``/T`` of nested fields, so a
    key equal to the last segment of another field's dotted name keeps ``/V``
    only and relies on ``/NeedAppearances``.
    """
    nested_tails = {f.name.rsplit(".", 1)[-1] for f in pdf_fields if "." in f.name}
    widget_ids: dict[int, str] = {}
    for pdf_field in pdf_fields:
        if pdf_field.name in text_values and pdf_field.name not in nested_tails:
            for widget in pdf_field.widgets():
                widget_ids[id(widget)] = pdf_field.name

    for page in writer.pages:
        page_values = {}
        for ref in _resolve(page.get("/Annots")) or []:
            name = widget_ids.get(id(_resolve(ref)))
            if name is not None:
                page_values[name] = text_values[name]
        if not page_values:
            continue
        try:
            writer.update_page_form_field_values(page, page_values, auto_regenerate=True)
        except UnicodeEncodeError as exc:
            _LOG.warning("text appearance not encodable in field font fields=%s error=%s", sorted(page_values), exc)


def _set_checkbox(pdf_field: PdfFormField, checked: bool) -> None:
    widgets = pdf_field.widgets()
    on_states = [_on_state(w) for w in widgets]
    field_on = next((s for s in on_states if s is not None), DEFAULT_ON_STATE)
    pdf_field.node[NameObject("/V")] = field_on if checked else OFF_STATE
    for widget, widget_on in zip(widgets, on_states):
        if checked and (widget_on is None or widget_on == field_on):
            widget[NameObject("/AS")] = field_on
        else:
            widget[NameObject("/AS")] = OFF_STATE


def should_check(logical_answer: Any, option: str | None) -> bool:
    """Decide one checkbox widget from an unwrapped answer and the option it represents."""
    option = option or ""
    if isinstance(logical_answer, list):
        return any(matches_option(item, option) for item in logical_answer)
    if isinstance(logical_answer, bool):
        if not option:
            return logical_answer is True
        return matches_option(logical_answer, option)
    if not option:
        return is_truthy_yes(logical_answer)
    return matches_option(logical_answer, option)


def fill_document(
    template_bytes: bytes,
    answers: Mapping[str, Any],
    mapping_rows: Sequence[MappingRow],
) -> FillResult:
    """Fill a template from answers keyed by field key.

    Text widgets are looked up by field key; checkbox widgets through the
    checkbox rows of ``mapping_rows``. Unresolved names go to the report.
    """
    reader = _read_template(template_bytes)
    try:
        writer = PdfWriter(clone_from=reader)
        pdf_fields = _acroform_fields(writer.root_object)
    except (PyPdfError, KeyError) as exc:
        raise TemplateLoadError(f"Failed to read AcroForm fields: {exc}") from exc

    by_name: dict[str, PdfFormField] = {}
    for pdf_field in pdf_fields:
        by_name.setdefault(pdf_field.name, pdf_field)

    checkbox_rows = [row for row in mapping_rows if row.is_checkbox]
    checkbox_keys = {row.field_key for row in checkbox_rows}
    report = FillReport()

    text_values: dict[str, str] = {}
    for field_key, raw_value in answers.items():
        target = by_name.get(field_key)
        if target is None or target.kind != "text":
            if field_key not in checkbox_keys:
                report.missing_text_in_pdf.append(field_key)
            continue
        text_values[target.name] = answer_to_text(raw_value)
        _set_text(target, text_values[target.name])
        report.filled_text += 1
    _render_text_appearances(writer, pdf_fields, text_values)

    for row in checkbox_rows:
        checked = should_check(answer_to_primitive(answers.get(row.field_key)), row.constant_value)
        target = by_name.get(row.pdf_field_name)
        if target is None or target.kind != "checkbox":
            report.missing_checkbox_in_pdf.append(row.pdf_field_name)
            continue
        _set_checkbox(target, checked)
        report.filled_checkbox += 1

    acro_form = _resolve(writer.root_object["/AcroForm"])
    acro_form[NameObject("/NeedAppearances")] = BooleanObject(True)

    out = io.BytesIO()
    writer.write(out)

    _LOG.info(
        "pdf fill finished filled_text=%s filled_checkbox=%s missing_text=%s missing_checkbox=%s",
        report.filled_text,
        report.filled_checkbox,
        len(report.missing_text_in_pdf),
        len(report.missing_checkbox_in_pdf),
    )
    return FillResult(pdf_bytes=out.getvalue(), report=report)
