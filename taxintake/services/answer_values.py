"""Coercion and matching helpers for stored answer values.

Answers are untyped JSON: strings, numbers, booleans, lists, or wrapper
objects such as ``{"value": ...}`` / ``{"text": ...}`` produced by older
wizard widgets. Each consumer picks exactly one coercion:

* ``answer_to_primitive`` - unwrap wrappers, keep the JSON shape (fill engine)
* ``answer_to_text``      - text widget contents
* ``to_number``           - calculation context
"""
from __future__ import annotations

import json
import math
import re
from typing import Any

TRUTHY_YES = frozenset({"yes", "true", "1", "on", "checked"})

_APOSTROPHES_RE = re.compile(r"['’]")
_DASHES_RE = re.compile(r"[—–-]")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_NUMERIC_JUNK_RE = re.compile(r"[^0-9.\-]")


def answer_to_primitive(value: Any) -> Any:
    """Unwrap ``{"value": x}`` / ``{"text": x}`` wrappers, recursing into lists.

    Objects without a known wrapper key are returned unchanged.
    """
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [answer_to_primitive(item) for item in value]
    if isinstance(value, dict):
        if "value" in value:
            return answer_to_primitive(value["value"])
        if "text" in value:
            return answer_to_primitive(value["text"])
        return value
    return value


def format_number(value: int | float) -> str:
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def stringify_scalar(value: Any) -> str:
    """String form used when comparing an answer against a mapping option."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_number(value)
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def answer_to_text(value: Any) -> str:
    primitive = answer_to_primitive(value)
    if primitive is None:
        return ""
    if isinstance(primitive, str):
        return primitive
    if isinstance(primitive, bool):
        return "Yes" if primitive else "No"
    if isinstance(primitive, (int, float)):
        return format_number(primitive)
    return json.dumps(primitive, separators=(",", ":"), ensure_ascii=False)


def is_truthy_yes(value: Any) -> bool:
    return stringify_scalar(value).strip().lower() in TRUTHY_YES


def normalize_token(value: Any) -> str:
    """Fold UI labels and database tokens onto one spelling.

    ``"Ch. 7"`` -> ``"ch_7"``, ``"Decedent’s"`` -> ``"decedents"``,
    ``"Trust & Estate"`` -> ``"trust_and_estate"``.
    """
    text = stringify_scalar(value).strip().lower()
    text = _APOSTROPHES_RE.sub("", text)
    text = _DASHES_RE.sub("_", text)
    text = text.replace("&", "and")
    text = text.replace(".", "")
    text = _NON_ALNUM_RE.sub("_", text)
    return text.strip("_")


def matches_option(answer_item: Any, option: Any) -> bool:
    a = stringify_scalar(answer_item)
    o = stringify_scalar(option)
    if a == o:
        return True
    return normalize_token(a) == normalize_token(o)


def to_number(value: Any) -> float:
    """Numeric view of an answer for calculations; anything unusable is 0."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else 0.0
    if isinstance(value, str):
        cleaned = _NUMERIC_JUNK_RE.sub("", value)
        if not cleaned:
            return 0.0
        try:
            number = float(cleaned)
        except ValueError:
            return 0.0
        return number if math.isfinite(number) else 0.0
    if isinstance(value, (list, tuple)):
        return sum((to_number(item) for item in value), 0.0)
    if isinstance(value, dict):
        if "value" in value or "text" in value:
            return to_number(answer_to_primitive(value))
        return 0.0
    return 0.0


def is_blank_answer(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False
