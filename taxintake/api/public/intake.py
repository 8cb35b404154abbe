from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from taxintake.api.errors import filing_or_404, http_error
from taxintake.db.session import get_db
from taxintake.models.client_invite import ClientInvite
from taxintake.models.common import as_utc
from taxintake.models.filing import FILING_STATUS_COMPLETE, FILING_STATUS_DRAFT, FILING_STATUS_IN_REVIEW, Filing
from taxintake.models.form_answer import ANSWER_SOURCE_CLIENT
from taxintake.schemas.intake import IntakeAnswersPayload, IntakeSaved, IntakeSubmitted
from taxintake.services.filing_store import FieldRegistry, FilingStore, get_field_registry
from taxintake.services.intake_wizard import (
    AUDIENCE_CLIENT,
    build_wizard,
    filter_fields_for_audience,
    find_missing_required,
    progress_percent,
    writable_field_keys,
)
from taxintake.services.invites import InviteError, resolve_invite

router = APIRouter()
_LOG = logging.getLogger("taxintake.intake")


def _invite_or_error(db: Session, token: str) -> ClientInvite:
    try:
        return resolve_invite(db, token)
    except InviteError as exc:
        raise http_error(exc) from exc


def _editable_filing_or_409(filing: Filing) -> None:
    if filing.status == FILING_STATUS_COMPLETE:
        raise HTTPException(status_code=409, detail="This questionnaire has already been completed")


@router.get("/{token}")
def open_intake(
    token: str,
    db: Session = Depends(get_db),
    registry: FieldRegistry = Depends(get_field_registry),
):
    invite = _invite_or_error(db, token)
    store = FilingStore(db)
    filing = filing_or_404(store, invite.filing_id)
    fields = registry.get_field_definitions(filing.form_code)
    payload = build_wizard(fields, store.get_answers(filing.id), form_code=filing.form_code, audience=AUDIENCE_CLIENT)
    payload["filing"] = {
        "id": str(filing.id),
        "form_code": filing.form_code,
        "tax_year": filing.tax_year,
        "status": filing.status,
    }
    payload["invite"] = {"status": invite.status, "expires_at": as_utc(invite.expires_at).isoformat()}
    return payload


@router.post("/{token}/answers", response_model=IntakeSaved)
def save_intake_answers(
    token: str,
    payload: IntakeAnswersPayload,
    db: Session = Depends(get_db),
    registry: FieldRegistry = Depends(get_field_registry),
):
    invite = _invite_or_error(db, token)
    store = FilingStore(db)
    filing = filing_or_404(store, invite.filing_id)
    _editable_filing_or_409(filing)

    fields = registry.get_field_definitions(filing.form_code)
    allowed = writable_field_keys(fields, AUDIENCE_CLIENT)
    changes = {key: value for key, value in payload.answers.items() if key in allowed}
    ignored = sorted(key for key in payload.answers if key not in allowed)
    if ignored:
        _LOG.info("client intake ignored keys filing_id=%s keys=%s", filing.id, ignored)

    merged = store.merge_answers(
        filing.id,
        changes,
        fields=fields,
        source=ANSWER_SOURCE_CLIENT,
        updated_by=invite.email or f"invite:{invite.id}",
    )
    return IntakeSaved(
        filing_id=filing.id,
        saved_keys=sorted(changes),
        ignored_keys=ignored,
        progress_percent=progress_percent(filter_fields_for_audience(fields, AUDIENCE_CLIENT), merged),
    )


@router.post("/{token}/submit", response_model=IntakeSubmitted)
def submit_intake(
    token: str,
    db: Session = Depends(get_db),
    registry: FieldRegistry = Depends(get_field_registry),
):
    invite = _invite_or_error(db, token)
    store = FilingStore(db)
    filing = filing_or_404(store, invite.filing_id)
    _editable_filing_or_409(filing)

    fields = filter_fields_for_audience(registry.get_field_definitions(filing.form_code), AUDIENCE_CLIENT)
    missing = find_missing_required(fields, store.get_answers(filing.id))
    if missing:
        raise HTTPException(
            status_code=400,
            detail="Please fill required fields: " + ", ".join(f.label or f.field_key for f in missing),
        )

    if filing.status == FILING_STATUS_DRAFT:
        filing.status = FILING_STATUS_IN_REVIEW
        db.add(filing)
        db.commit()
    _LOG.info("client intake submitted filing_id=%s invite_id=%s", filing.id, invite.id)
    return IntakeSubmitted(filing_id=filing.id, status=filing.status, message="Thank you, your answers were sent")
