from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException

from taxintake.models.filing import Filing
from taxintake.services.filing_exceptions import ConfigurationError, PdfGenerationError
from taxintake.services.filing_store import FilingStore
from taxintake.services.invites import InviteError

_LOG = logging.getLogger("taxintake.http")


def http_error(exc: PdfGenerationError | InviteError) -> HTTPException:
    if isinstance(exc, ConfigurationError):
        _LOG.error("configuration error: %s", exc)
    return HTTPException(status_code=exc.status_code, detail=str(exc))


def filing_or_404(store: FilingStore, filing_id: Any) -> Filing:
    try:
        return store.get_filing(filing_id)
    except PdfGenerationError as exc:
        raise http_error(exc) from exc


def iso_or_none(value) -> str | None:
    return value.isoformat() if value is not None else None
