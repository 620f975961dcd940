from __future__ import annotations

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import ArchiveMixin, Base, TimestampMixin
from app.models.company import Company


class Branch(TimestampMixin, ArchiveMixin, Base):
    """Physical branch of a company that receives maintenance visits.

    Attributes:
        company_id: Foreign key to the owning company.
        branch_code: Human-facing code (e.g. ``0001-JED-001-0001``).
        name: Branch display name.
        city: City the branch is located in.
    """

    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey(Company.id), nullable=False, index=True
    )
    company: Mapped[Company] = relationship(Company)
    branch_code: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)
