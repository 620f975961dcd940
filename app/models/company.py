from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.models import ArchiveMixin, Base, TimestampMixin


class Company(TimestampMixin, ArchiveMixin, Base):
    """Customer company owning contracts and branches.

    Attributes:
        company_code: Human-facing sequential code (e.g. ``0001``).
        name: Company display name.
    """

    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    company_code: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
