from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List, Literal
from uuid import UUID


class ClientCreate(BaseModel):
    full_name: str = Field(min_length=1, max_length=200)
    email: Optional[str] = None
    phone: Optional[str] = None


class ClientRead(BaseModel):
    id: UUID
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[str] = None


class FilingCreate(BaseModel):
    client_id: UUID
    tax_year: int = Field(ge=1900, le=2100)
    form_codes: List[str] = Field(min_length=1)


class FilingRead(BaseModel):
    id: UUID
    client_id: UUID
    form_code: str
    tax_year: int
    status: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class FilingDetail(FilingRead):
    answers: Dict[str, Any] = Field(default_factory=dict)
    answered_count: int = 0
    total_fields: int = 0
    progress_percent: int = 0


class AnswersReplace(BaseModel):
    answers: Dict[str, Any] = Field(default_factory=dict)
    finalize: bool = False


class AnswerUpsert(BaseModel):
    value: Any = None


class AnswersSaved(BaseModel):
    filing_id: UUID
    status: str
    answers: Dict[str, Any]
    calculated: Dict[str, Any] = Field(default_factory=dict)


class CalculatePreview(BaseModel):
    answers: Dict[str, Any] = Field(default_factory=dict)


class CalculateResult(BaseModel):
    calculated: Dict[str, Any]
    answers: Dict[str, Any]


class InviteCreate(BaseModel):
    email: Optional[str] = None
    send_email: bool = True


class InviteRead(BaseModel):
    id: UUID
    filing_id: UUID
    email: Optional[str] = None
    token: str
    link: str
    status: str
    expires_at: str
    delivery: Optional[Dict[str, Any]] = None


AudienceParam = Literal["lawyer", "client"]
