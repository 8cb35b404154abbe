from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from taxintake.api.errors import filing_or_404, http_error, iso_or_none
from taxintake.core.deps import firm_member
from taxintake.db.session import get_db
from taxintake.models.client import Client
from taxintake.models.client_invite import ClientInvite
from taxintake.models.common import as_utc
from taxintake.models.filing import FILING_STATUS_COMPLETE, FILING_STATUS_DRAFT, Filing
from taxintake.models.form_answer import ANSWER_SOURCE_LAWYER
from taxintake.schemas.filings import (
    AnswersReplace,
    AnswersSaved,
    AnswerUpsert,
    AudienceParam,
    CalculatePreview,
    CalculateResult,
    FilingCreate,
    FilingDetail,
    FilingRead,
    InviteCreate,
    InviteRead,
)
from taxintake.services.calculations import apply_calculations, recompute
from taxintake.services.filing_exceptions import PdfGenerationError
from taxintake.services.filing_store import (
    FieldRegistry,
    FilingStore,
    MappingRegistry,
    get_field_registry,
    get_firm_filing_store,
    get_mapping_registry,
)
from taxintake.services.intake_wizard import build_wizard, count_answered, find_missing_required, progress_percent
from taxintake.services.invites import create_invite, deliver_invite, invite_link, revoke_invite
from taxintake.services.pdf_generation import dump_template, generate_pdf
from taxintake.services.template_store import TemplateStore, get_template_store

router = APIRouter()
_LOG = logging.getLogger("taxintake.filings")

_FORM_CODE_MAX = 20


def serialize_filing(row: Filing) -> FilingRead:
    return FilingRead(
        id=row.id,
        client_id=row.client_id,
        form_code=row.form_code,
        tax_year=row.tax_year,
        status=row.status,
        created_at=iso_or_none(row.created_at),
        updated_at=iso_or_none(row.updated_at),
    )


def serialize_invite(row: ClientInvite, delivery: dict | None = None) -> InviteRead:
    return InviteRead(
        id=row.id,
        filing_id=row.filing_id,
        email=row.email,
        token=row.token,
        link=invite_link(row.token),
        status=row.status,
        expires_at=as_utc(row.expires_at).isoformat(),
        delivery=delivery,
    )


def _form_codes_or_400(raw_codes: list[str]) -> list[str]:
    codes: list[str] = []
    for raw in raw_codes:
        code = str(raw or "").strip().upper()
        if not code or len(code) > _FORM_CODE_MAX:
            raise HTTPException(status_code=400, detail=f"Invalid form code: {raw!r}")
        if code not in codes:
            codes.append(code)
    return codes


def missing_required_or_400(fields, answers) -> None:
    missing = find_missing_required(fields, answers)
    if missing:
        raise HTTPException(
            status_code=400,
            detail="Please fill required fields: " + ", ".join(f.label or f.field_key for f in missing),
        )


@router.post("", response_model=list[FilingRead], status_code=201)
def create_filings(
    payload: FilingCreate,
    db: Session = Depends(get_db),
    member: dict = Depends(firm_member),
):
    client = db.get(Client, payload.client_id)
    if client is None or client.firm_id != member["firm_id"]:
        raise HTTPException(status_code=404, detail="Client not found")

    rows = [
        Filing(
            firm_id=client.firm_id,
            client_id=client.id,
            form_code=code,
            tax_year=payload.tax_year,
            status=FILING_STATUS_DRAFT,
        )
        for code in _form_codes_or_400(payload.form_codes)
    ]
    db.add_all(rows)
    db.commit()
    for row in rows:
        db.refresh(row)
    _LOG.info("filings created client_id=%s forms=%s", client.id, [row.form_code for row in rows])
    return [serialize_filing(row) for row in rows]


@router.get("", response_model=list[FilingRead])
def list_filings(
    client_id: uuid.UUID | None = Query(None),
    db: Session = Depends(get_db),
    member: dict = Depends(firm_member),
):
    query = db.query(Filing).filter(Filing.firm_id == member["firm_id"])
    if client_id is not None:
        query = query.filter(Filing.client_id == client_id)
    rows = query.order_by(Filing.tax_year.desc(), Filing.form_code.asc(), Filing.created_at.asc()).all()
    return [serialize_filing(row) for row in rows]


@router.get("/{filing_id}", response_model=FilingDetail)
def get_filing(
    filing_id: str,
    store: FilingStore = Depends(get_firm_filing_store),
    registry: FieldRegistry = Depends(get_field_registry),
):
    filing = filing_or_404(store, filing_id)
    fields = registry.get_field_definitions(filing.form_code)
    answers = store.get_answers(filing.id)
    return FilingDetail(
        **serialize_filing(filing).model_dump(),
        answers=answers,
        answered_count=count_answered(fields, answers),
        total_fields=len(fields),
        progress_percent=progress_percent(fields, answers),
    )


@router.get("/{filing_id}/pdf")
def download_filing_pdf(
    filing_id: str,
    inline: bool = Query(False),
    dump: bool = Query(False),
    store: FilingStore = Depends(get_firm_filing_store),
    mappings: MappingRegistry = Depends(get_mapping_registry),
    templates: TemplateStore = Depends(get_template_store),
):
    try:
        if dump:
            return dump_template(filing_id, filings=store, mappings=mappings, templates=templates)
        generated = generate_pdf(filing_id, filings=store, mappings=mappings, templates=templates, inline=inline)
    except PdfGenerationError as exc:
        raise http_error(exc) from exc
    return StreamingResponse(iter([generated.pdf_bytes]), media_type="application/pdf", headers=generated.headers())


@router.get("/{filing_id}/wizard")
def get_wizard(
    filing_id: str,
    audience: AudienceParam = Query("lawyer"),
    store: FilingStore = Depends(get_firm_filing_store),
    registry: FieldRegistry = Depends(get_field_registry),
):
    filing = filing_or_404(store, filing_id)
    fields = registry.get_field_definitions(filing.form_code)
    payload = build_wizard(fields, store.get_answers(filing.id), form_code=filing.form_code, audience=audience)
    payload["filing"] = serialize_filing(filing).model_dump(mode="json")
    return payload


@router.put("/{filing_id}/answers", response_model=AnswersSaved)
def replace_answers(
    filing_id: str,
    payload: AnswersReplace,
    store: FilingStore = Depends(get_firm_filing_store),
    registry: FieldRegistry = Depends(get_field_registry),
    member: dict = Depends(firm_member),
):
    filing = filing_or_404(store, filing_id)
    fields = registry.get_field_definitions(filing.form_code)
    if payload.finalize:
        missing_required_or_400(fields, apply_calculations(fields, payload.answers))

    saved = store.save_answers(
        filing.id,
        payload.answers,
        fields=fields,
        source=ANSWER_SOURCE_LAWYER,
        updated_by=str(member.get("sub") or "") or None,
    )
    if payload.finalize and filing.status != FILING_STATUS_COMPLETE:
        filing.status = FILING_STATUS_COMPLETE
        store.db.add(filing)
        store.db.commit()
    return AnswersSaved(
        filing_id=filing.id,
        status=filing.status,
        answers=saved,
        calculated={f.field_key: saved[f.field_key] for f in fields if f.is_calculated and f.field_key in saved},
    )


@router.post("/{filing_id}/answers/{field_key}", response_model=AnswersSaved)
def autosave_answer(
    filing_id: str,
    field_key: str,
    payload: AnswerUpsert,
    store: FilingStore = Depends(get_firm_filing_store),
    registry: FieldRegistry = Depends(get_field_registry),
    member: dict = Depends(firm_member),
):
    filing = filing_or_404(store, filing_id)
    key = str(field_key or "").strip()
    if not key:
        raise HTTPException(status_code=400, detail='Field "field_key" is required')
    fields = registry.get_field_definitions(filing.form_code)
    if any(f.field_key == key and f.is_calculated for f in fields):
        raise HTTPException(status_code=400, detail=f"Field {key} is calculated and cannot be edited")

    merged = store.upsert_answer(
        filing.id,
        key,
        payload.value,
        fields=fields,
        source=ANSWER_SOURCE_LAWYER,
        updated_by=str(member.get("sub") or "") or None,
    )
    return AnswersSaved(
        filing_id=filing.id,
        status=filing.status,
        answers=merged,
        calculated={f.field_key: merged[f.field_key] for f in fields if f.is_calculated and f.field_key in merged},
    )


@router.post("/{filing_id}/calculate", response_model=CalculateResult)
def preview_calculations(
    filing_id: str,
    payload: CalculatePreview,
    store: FilingStore = Depends(get_firm_filing_store),
    registry: FieldRegistry = Depends(get_field_registry),
):
    filing = filing_or_404(store, filing_id)
    fields = registry.get_field_definitions(filing.form_code)
    answers = {**store.get_answers(filing.id), **payload.answers}
    calculated = recompute(fields, answers)
    return CalculateResult(calculated=calculated, answers={**answers, **calculated})


@router.post("/{filing_id}/invites", response_model=InviteRead, status_code=201)
def create_filing_invite(
    filing_id: str,
    payload: InviteCreate,
    store: FilingStore = Depends(get_firm_filing_store),
    member: dict = Depends(firm_member),
):
    filing = filing_or_404(store, filing_id)
    invite = create_invite(store.db, filing, email=payload.email, created_by=str(member.get("sub") or "") or None)
    delivery = deliver_invite(invite, filing) if payload.send_email else None
    return serialize_invite(invite, delivery)


@router.post("/{filing_id}/invites/{invite_id}/revoke", response_model=InviteRead)
def revoke_filing_invite(
    filing_id: str,
    invite_id: uuid.UUID,
    store: FilingStore = Depends(get_firm_filing_store),
):
    filing = filing_or_404(store, filing_id)
    invite = store.db.get(ClientInvite, invite_id)
    if invite is None or invite.filing_id != filing.id:
        raise HTTPException(status_code=404, detail="Invite not found")
    return serialize_invite(revoke_invite(store.db, invite))
