from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class UploadInitPayload(BaseModel):
    filing_id: str
    field_key: str
    file_name: str
    mime_type: str
    size_bytes: int


class UploadInitResponse(BaseModel):
    method: str = "PRESIGNED_PUT"
    key: str
    presigned_url: str


class UploadCompletePayload(BaseModel):
    filing_id: str
    field_key: str
    key: str
    file_name: str
    mime_type: str
    size_bytes: int


class UploadCompleteResponse(BaseModel):
    status: str = "ok"
    attachment_id: Optional[str] = None
    download_url: Optional[str] = None
