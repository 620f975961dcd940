from __future__ import annotations

from datetime import date

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import ArchiveMixin, Base, TimestampMixin
from app.models.branch import Branch
from app.models.company import Company


# Branches covered by a service batch
service_batch_branches = Table(
    "service_batch_branches",
    Base.metadata,
    Column("service_batch_id", ForeignKey("service_batches.id"), primary_key=True),
    Column("branch_id", ForeignKey("branches.id"), primary_key=True),
)


class Contract(TimestampMixin, ArchiveMixin, Base):
    """Maintenance contract between the provider and a company.

    Visits tied to the contract only count toward compliance when they fall
    within ``[start_date, end_date]``.
    """

    __tablename__ = "contracts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    contract_code: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey(Company.id), nullable=False, index=True
    )
    company: Mapped[Company] = relationship(Company)
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    service_batches: Mapped[list["ServiceBatch"]] = relationship(
        "ServiceBatch",
        back_populates="contract",
        order_by="ServiceBatch.position",
    )


class ServiceBatch(TimestampMixin, Base):
    """Group of branches sharing services and annual visit obligations."""

    __tablename__ = "service_batches"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    contract_id: Mapped[int] = mapped_column(
        ForeignKey(Contract.id), nullable=False, index=True
    )
    contract: Mapped[Contract] = relationship(
        Contract, back_populates="service_batches"
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    batch_code: Mapped[str | None] = mapped_column(String(64), nullable=True)

    branches: Mapped[list[Branch]] = relationship(
        Branch, secondary=service_batch_branches
    )

    fire_extinguisher: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    alarm_system: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    fire_suppression: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    gas_system: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    foam_system: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    regular_visits_per_year: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    emergency_visits_per_year: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    notes: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    @property
    def branch_ids(self) -> list[int]:
        return [b.id for b in (self.branches or [])]

    def services(self) -> dict[str, bool]:
        """Return the service flags copied onto visits planned for this batch."""

        return {
            "fire_extinguisher": bool(self.fire_extinguisher),
            "alarm_system": bool(self.alarm_system),
            "fire_suppression": bool(self.fire_suppression),
            "gas_system": bool(self.gas_system),
            "foam_system": bool(self.foam_system),
        }
