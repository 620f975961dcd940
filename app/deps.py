from __future__ import annotations

from typing import Annotated, TypeAlias

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.visit_query_service import PlanningSnapshot, load_planning_snapshot
from app.services.visit_store import SqlVisitStore, VisitStore
from db.session import get_db

DbDep: TypeAlias = Annotated[AsyncSession, Depends(get_db)]


async def get_visit_store(db: DbDep) -> VisitStore:
    return SqlVisitStore(db)


async def get_planning_snapshot(db: DbDep) -> PlanningSnapshot:
    return await load_planning_snapshot(db)


StoreDep: TypeAlias = Annotated[VisitStore, Depends(get_visit_store)]
SnapshotDep: TypeAlias = Annotated[PlanningSnapshot, Depends(get_planning_snapshot)]
