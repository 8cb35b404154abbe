import uuid

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from taxintake.db.session import Base
from taxintake.models.common import TimestampMixin, UUIDMixin

FILING_STATUS_DRAFT = "draft"
FILING_STATUS_IN_REVIEW = "in_review"
FILING_STATUS_COMPLETE = "complete"


class Filing(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "filings"

    firm_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("firms.id"), nullable=False, index=True)
    client_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    form_code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # 1041 | 706 | 709
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=FILING_STATUS_DRAFT)
