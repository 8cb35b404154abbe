from __future__ import annotations

import logging
import uuid

from botocore.exceptions import ClientError
from fastapi import APIRouter, Depends, HTTPException

from taxintake.api.errors import filing_or_404
from taxintake.core.config import settings
from taxintake.core.deps import firm_member
from taxintake.models.attachment import Attachment
from taxintake.schemas.uploads import UploadCompletePayload, UploadCompleteResponse, UploadInitPayload, UploadInitResponse
from taxintake.services.filing_store import FilingStore, get_firm_filing_store
from taxintake.services.s3_storage import attachment_prefix, build_object_key, get_s3_storage

router = APIRouter()
_LOG = logging.getLogger("taxintake.uploads")


def _max_file_bytes() -> int:
    return int(settings.MAX_FILE_MB) * 1024 * 1024


def _validate_size_or_400(size_bytes: int) -> None:
    if int(size_bytes or 0) <= 0:
        raise HTTPException(status_code=400, detail="Invalid file size")
    if int(size_bytes) > _max_file_bytes():
        raise HTTPException(status_code=400, detail=f"File exceeds the {settings.MAX_FILE_MB} MB limit")


def _validate_mime_or_400(mime_type: str) -> None:
    allowed = settings.allowed_mime_types_list
    if allowed and str(mime_type or "").strip().lower() not in allowed:
        raise HTTPException(status_code=400, detail=f"File type {mime_type} is not allowed")


def _field_key_or_400(raw: str) -> str:
    key = str(raw or "").strip()
    if not key:
        raise HTTPException(status_code=400, detail='Field "field_key" is required')
    return key


def _ensure_object_key_prefix_or_400(key: str, prefix: str) -> None:
    if not str(key or "").startswith(prefix):
        raise HTTPException(status_code=400, detail="Object key does not belong to this filing field")


@router.post("/init", response_model=UploadInitResponse)
def upload_init(
    payload: UploadInitPayload,
    store: FilingStore = Depends(get_firm_filing_store),
):
    _validate_size_or_400(payload.size_bytes)
    _validate_mime_or_400(payload.mime_type)
    field_key = _field_key_or_400(payload.field_key)
    filing = filing_or_404(store, payload.filing_id)

    storage = get_s3_storage()
    key = build_object_key(attachment_prefix(filing.id, field_key), payload.file_name)
    return UploadInitResponse(key=key, presigned_url=storage.create_presigned_put_url(key, payload.mime_type))


@router.post("/complete", response_model=UploadCompleteResponse)
def upload_complete(
    payload: UploadCompletePayload,
    store: FilingStore = Depends(get_firm_filing_store),
    member: dict = Depends(firm_member),
):
    _validate_size_or_400(payload.size_bytes)
    _validate_mime_or_400(payload.mime_type)
    field_key = _field_key_or_400(payload.field_key)
    filing = filing_or_404(store, payload.filing_id)
    _ensure_object_key_prefix_or_400(payload.key, attachment_prefix(filing.id, field_key))

    storage = get_s3_storage()
    try:
        head = storage.head_object(payload.key)
    except ClientError:
        raise HTTPException(status_code=400, detail="File not found in storage")

    actual_size = int(head.get("ContentLength") or payload.size_bytes)
    _validate_size_or_400(actual_size)

    row = Attachment(
        filing_id=filing.id,
        field_key=field_key,
        file_name=payload.file_name,
        mime_type=payload.mime_type,
        size_bytes=actual_size,
        s3_key=payload.key,
        uploaded_by=str(member.get("sub") or "") or None,
    )
    store.db.add(row)
    store.db.commit()
    store.db.refresh(row)
    _LOG.info("attachment stored filing_id=%s field_key=%s size=%s", filing.id, field_key, actual_size)
    return UploadCompleteResponse(
        status="ok",
        attachment_id=str(row.id),
        download_url=storage.create_presigned_get_url(row.s3_key, file_name=row.file_name),
    )


@router.delete("/{attachment_id}")
def delete_attachment(
    attachment_id: uuid.UUID,
    store: FilingStore = Depends(get_firm_filing_store),
):
    row = store.db.get(Attachment, attachment_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Attachment not found")
    filing_or_404(store, row.filing_id)

    try:
        get_s3_storage().delete_object(row.s3_key)
    except ClientError as exc:
        _LOG.warning("attachment object delete failed key=%s: %s", row.s3_key, exc)
        raise HTTPException(status_code=502, detail="Failed to delete file from storage")

    store.db.delete(row)
    store.db.commit()
    return {"status": "ok", "attachment_id": str(attachment_id)}
