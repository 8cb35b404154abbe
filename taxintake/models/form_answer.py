import uuid
from typing import Any

from sqlalchemy import ForeignKey, JSON, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from taxintake.db.session import Base
from taxintake.models.common import TimestampMixin, UUIDMixin

ANSWER_SOURCE_LAWYER = "lawyer"
ANSWER_SOURCE_CLIENT = "client"


class FormAnswer(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "form_answers"
    __table_args__ = (
        UniqueConstraint("filing_id", "field_key", name="uq_form_answers_filing_field"),
    )

    filing_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("filings.id"), nullable=False, index=True)
    field_key: Mapped[str] = mapped_column(String(120), nullable=False)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    source: Mapped[str] = mapped_column(String(10), nullable=False, default=ANSWER_SOURCE_LAWYER)
    updated_by: Mapped[str | None] = mapped_column(String(120), nullable=True)
