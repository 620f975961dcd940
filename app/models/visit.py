from __future__ import annotations

from datetime import date
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import ArchiveMixin, Base, TimestampMixin
from app.models.branch import Branch
from app.models.company import Company
from app.models.contract import Contract
from app.services.visit_dates import parse_visit_date


class VisitType(StrEnum):
    REGULAR = "regular"
    EMERGENCY = "emergency"
    FOLLOWUP = "followup"


class VisitStatus(StrEnum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class Visit(TimestampMixin, ArchiveMixin, Base):
    """Central planning entity representing a maintenance visit to a branch.

    ``scheduled_date`` and ``completed_date`` keep the legacy ``dd-Mmm-yyyy``
    text form at the persistence boundary; use :attr:`scheduled_on` for the
    parsed value.
    """

    __tablename__ = "visits"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    visit_code: Mapped[str | None] = mapped_column(
        String(32), nullable=True, index=True
    )

    branch_id: Mapped[int] = mapped_column(
        ForeignKey(Branch.id), nullable=False, index=True
    )
    branch: Mapped[Branch] = relationship(Branch)
    contract_id: Mapped[int] = mapped_column(
        ForeignKey(Contract.id), nullable=False, index=True
    )
    contract: Mapped[Contract] = relationship(Contract)
    company_id: Mapped[int] = mapped_column(
        ForeignKey(Company.id), nullable=False, index=True
    )

    type: Mapped[str] = mapped_column(
        String(16), nullable=False, default=VisitType.REGULAR.value
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=VisitStatus.SCHEDULED.value, index=True
    )
    scheduled_date: Mapped[str] = mapped_column(String(32), nullable=False)
    completed_date: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # {"overall_status": ..., "issues": [...], "recommendations": [...],
    #  "next_visit_date": ...}
    results: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    # Service flags copied from the originating batch
    services: Mapped[dict[str, bool] | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    @property
    def scheduled_on(self) -> date | None:
        return parse_visit_date(self.scheduled_date)
