from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from taxintake.db.session import Base
from taxintake.models.common import TimestampMixin, UUIDMixin


class Firm(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "firms"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
