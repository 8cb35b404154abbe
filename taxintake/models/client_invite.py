import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from taxintake.db.session import Base
from taxintake.models.common import TimestampMixin, UUIDMixin

INVITE_STATUS_PENDING = "pending"
INVITE_STATUS_OPENED = "opened"
INVITE_STATUS_REVOKED = "revoked"


class ClientInvite(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "client_invites"

    filing_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("filings.id"), nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=INVITE_STATUS_PENDING)
    created_by: Mapped[str | None] = mapped_column(String(120), nullable=True)
