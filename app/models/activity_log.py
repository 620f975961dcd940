from __future__ import annotations

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base, TimestampMixin


class ActivityLog(TimestampMixin, Base):
    """Generic audit log entry for planning and visit actions.

    Args:
        actor: Optional label of whoever performed the action. ``NULL`` is
            allowed for system-initiated actions such as automated planning.
        action: Machine-friendly action label (e.g. ``"visit_moved"``,
            ``"planning_automated_run"``, ``"planning_week_bulk_planned"``).
        target_type: Logical target type of the action (e.g. ``"visit"``,
            ``"planning_week"``, ``"branch"``).
        target_id: Optional primary key of the target entity when applicable.
        details: Optional JSON payload with structured context such as
            ``{"planned_visit_ids": [101, 102]}``.
        batch_id: Optional correlation identifier used to group multiple log
            entries that belong to a single high-level operation.

    Returns:
        Persisted ``ActivityLog`` rows for auditing and reporting.
    """

    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    actor: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    target_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    target_id: Mapped[int | None] = mapped_column(nullable=True, index=True)

    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    batch_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
