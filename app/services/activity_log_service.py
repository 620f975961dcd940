"""Service helpers for creating generic activity log entries.

These helpers centralize how we persist audit trail information so that
routers and planning services can call a single function instead of
constructing ``ActivityLog`` rows directly.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import logger
from app.models.activity_log import ActivityLog


async def log_activity(
    db: AsyncSession,
    *,
    actor: str | None,
    action: str,
    target_type: str,
    target_id: int | None = None,
    details: dict[str, Any] | None = None,
    batch_id: str | None = None,
    commit: bool = True,
) -> ActivityLog:
    """Create and persist a single ``ActivityLog`` entry.

    Args:
        db: Async SQLAlchemy session.
        actor: Optional label of whoever performed the action; ``None`` for
            system-initiated runs.
        action: Machine-readable action label (e.g. ``"visit_moved"``).
        target_type: Logical target type (e.g. ``"visit"``, ``"planning_week"``).
        target_id: Optional primary key of the affected entity.
        details: Optional JSON-serializable dict with extra context.
        batch_id: Optional correlation id for grouping related entries.
        commit: Whether to commit the session after inserting the log.

    Returns:
        The persisted ``ActivityLog`` instance.
    """

    entry = ActivityLog(
        actor=actor,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=details or None,
        batch_id=batch_id,
    )
    db.add(entry)

    if commit:
        try:
            await db.commit()
        except Exception:
            await db.rollback()
            logger.warning("Failed to commit activity log entry", exc_info=True)
            raise

    return entry
