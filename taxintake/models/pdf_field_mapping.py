from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from taxintake.db.session import Base
from taxintake.models.common import TimestampMixin, UUIDMixin

FORMAT_CHECKBOX = "checkbox"
FORMAT_TEXT = "text"


class PdfFieldMapping(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "pdf_field_mappings"
    __table_args__ = (
        UniqueConstraint("form_code", "tax_year", "pdf_field_name", name="uq_pdf_field_mappings_form_year_pdf_name"),
    )

    form_code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    field_key: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    pdf_field_name: Mapped[str] = mapped_column(String(255), nullable=False)
    format: Mapped[str | None] = mapped_column(String(20), nullable=True)
    constant_value: Mapped[str | None] = mapped_column(String(255), nullable=True)
