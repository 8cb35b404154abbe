from sqlalchemy import Boolean, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from taxintake.db.session import Base
from taxintake.models.common import TimestampMixin, UUIDMixin


class FormField(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "form_fields"
    __table_args__ = (
        UniqueConstraint("form_code", "field_key", name="uq_form_fields_form_code_field_key"),
    )

    form_code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    field_key: Mapped[str] = mapped_column(String(120), nullable=False)
    label: Mapped[str] = mapped_column(String(300), nullable=False)
    help_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(30), nullable=False, default="text")
    input_type: Mapped[str | None] = mapped_column(String(60), nullable=True)
    data_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    section: Mapped[str | None] = mapped_column(String(120), nullable=True)
    sort_order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    audience: Mapped[str | None] = mapped_column(String(20), nullable=True)  # client | lawyer | both
    is_calculated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    calculation: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    options: Mapped[list | None] = mapped_column(JSON, nullable=True)
    line_item: Mapped[str | None] = mapped_column(String(30), nullable=True)
