from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from uuid import UUID


class IntakeAnswersPayload(BaseModel):
    answers: Dict[str, Any] = Field(default_factory=dict)


class IntakeSaved(BaseModel):
    filing_id: UUID
    saved_keys: List[str]
    ignored_keys: List[str] = Field(default_factory=list)
    progress_percent: int = 0


class IntakeSubmitted(BaseModel):
    filing_id: UUID
    status: str
    submitted: bool = True
    message: Optional[str] = None
