from __future__ import annotations

from typing import Any, Iterable, Mapping

from taxintake.models.form_field import FormField
from taxintake.services.answer_values import is_blank_answer

AUDIENCE_LAWYER = "lawyer"
AUDIENCE_CLIENT = "client"
AUDIENCE_BOTH = "both"

DEFAULT_SECTION = "Other"

SECTION_ORDER: dict[str, list[str]] = {
    "1041": [
        "Header",
        "Income",
        "Deductions",
        "Tax & Payments",
        "Schedule A",
        "Schedule B",
        "Schedule G Part I",
        "Schedule G Part II",
        "Other Information",
        "Preparer",
    ],
}

KIND_TEXT = "text"
KIND_NUMBER = "number"
KIND_CURRENCY = "currency"
KIND_DATE = "date"
KIND_CHECKBOX_SINGLE = "checkbox_single"
KIND_MULTI_SELECT = "multi_select"
KIND_SELECT = "select"
KIND_ATTACHMENT = "attachment"


def _field_audience(field: FormField) -> str:
    return str(field.audience or AUDIENCE_BOTH).strip().lower()


def filter_fields_for_audience(fields: Iterable[FormField], audience: str) -> list[FormField]:
    """Lawyers see every field; clients see ``client`` and ``both`` fields."""
    if str(audience or "").strip().lower() != AUDIENCE_CLIENT:
        return list(fields)
    return [f for f in fields if _field_audience(f) in {AUDIENCE_CLIENT, AUDIENCE_BOTH}]


def _sorted_fields(fields: list[FormField]) -> list[FormField]:
    return sorted(fields, key=lambda f: f.sort_order or 0)


def group_sections(fields: Iterable[FormField], form_code: str) -> list[tuple[str, list[FormField]]]:
    by_section: dict[str, list[FormField]] = {}
    for f in fields:
        by_section.setdefault(f.section or DEFAULT_SECTION, []).append(f)

    groups: list[tuple[str, list[FormField]]] = []
    for section in SECTION_ORDER.get(str(form_code), []):
        if section in by_section:
            groups.append((section, _sorted_fields(by_section.pop(section))))
    for section, section_fields in by_section.items():
        groups.append((section, _sorted_fields(section_fields)))
    return groups


def resolve_input_kind(field: FormField) -> str:
    raw_input = str(field.input_type or "").strip().lower()
    raw_type = str(field.type or "").strip().lower()

    if "checkbox" in raw_input and "multi" in raw_input:
        return KIND_MULTI_SELECT
    if "checkbox" in raw_input:
        return KIND_CHECKBOX_SINGLE
    if raw_input == "yes;no":
        return KIND_SELECT
    if "date" in raw_input:
        return KIND_DATE
    if "currency" in raw_input:
        return KIND_CURRENCY
    if "number" in raw_input:
        return KIND_NUMBER
    if "attach" in raw_input or "signature" in raw_input:
        return KIND_ATTACHMENT
    if raw_type == "date":
        return KIND_DATE
    if raw_type == "number":
        return KIND_NUMBER
    return KIND_TEXT


def count_answered(fields: Iterable[FormField], answers: Mapping[str, Any]) -> int:
    return sum(
        1 for f in fields if not f.is_calculated and not is_blank_answer(answers.get(f.field_key))
    )


def progress_percent(fields: Iterable[FormField], answers: Mapping[str, Any]) -> int:
    editable = [f for f in fields if not f.is_calculated]
    if not editable:
        return 0
    return round(count_answered(editable, answers) * 100 / len(editable))


def find_missing_required(fields: Iterable[FormField], answers: Mapping[str, Any]) -> list[FormField]:
    missing: list[FormField] = []
    for f in fields:
        if not f.required or f.is_calculated:
            continue
        kind = resolve_input_kind(f)
        value = answers.get(f.field_key)
        if kind == KIND_CHECKBOX_SINGLE:
            continue
        if kind == KIND_MULTI_SELECT:
            if not isinstance(value, list) or not value:
                missing.append(f)
            continue
        if value is None or value == "":
            missing.append(f)
    return missing


def writable_field_keys(fields: Iterable[FormField], audience: str) -> set[str]:
    """Keys this audience may set directly; calculated fields are never writable."""
    return {f.field_key for f in filter_fields_for_audience(fields, audience) if not f.is_calculated}


def serialize_field(field: FormField) -> dict[str, Any]:
    return {
        "field_key": field.field_key,
        "label": field.label,
        "help_text": field.help_text,
        "line_item": field.line_item,
        "kind": resolve_input_kind(field),
        "options": list(field.options or []),
        "required": bool(field.required),
        "is_calculated": bool(field.is_calculated),
        "read_only": bool(field.is_calculated),
        "calculation": field.calculation if field.is_calculated else None,
    }


def build_wizard(
    fields: Iterable[FormField],
    answers: Mapping[str, Any],
    *,
    form_code: str,
    audience: str,
) -> dict[str, Any]:
    visible = filter_fields_for_audience(fields, audience)
    visible_keys = {f.field_key for f in visible}
    return {
        "form_code": str(form_code),
        "audience": audience,
        "sections": [
            {"name": name, "fields": [serialize_field(f) for f in section_fields]}
            for name, section_fields in group_sections(visible, form_code)
        ],
        "answers": {key: value for key, value in answers.items() if key in visible_keys},
        "answered_count": count_answered(visible, answers),
        "total_fields": len(visible),
        "progress_percent": progress_percent(visible, answers),
    }
