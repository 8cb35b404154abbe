from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path

from taxintake.core.config import settings
from taxintake.services.filing_exceptions import TemplateNotFoundError

_LOG = logging.getLogger("taxintake.pdf")

_SAFE_PART_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class TemplateStore:
    """Fillable blank forms on disk, named ``{form_code}_{tax_year}_fillable.pdf``."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def template_path(self, form_code: str, tax_year: int) -> Path:
        code = str(form_code or "").strip()
        year = str(tax_year or "").strip()
        if not _SAFE_PART_RE.match(code) or not _SAFE_PART_RE.match(year):
            raise TemplateNotFoundError(f"Invalid template reference: {form_code!r} / {tax_year!r}")
        return self.root / f"{code}_{year}_fillable.pdf"

    def load_template(self, form_code: str, tax_year: int) -> bytes:
        path = self.template_path(form_code, tax_year)
        try:
            data = path.read_bytes()
        except FileNotFoundError as exc:
            raise TemplateNotFoundError(f"PDF template not found: {path.name}") from exc
        except OSError as exc:
            raise TemplateNotFoundError(f"PDF template unreadable: {path.name}: {exc}") from exc
        _LOG.debug("template loaded path=%s size=%s", path, len(data))
        return data


@lru_cache(maxsize=1)
def get_template_store() -> TemplateStore:
    return TemplateStore(settings.FORM_TEMPLATES_DIR)
