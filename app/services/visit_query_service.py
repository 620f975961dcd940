from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.db.utils import select_active
from app.models.branch import Branch
from app.models.contract import Contract, ServiceBatch
from app.services.visit_dates import scheduled_on


@dataclass
class PlanningSnapshot:
    """Read-only planning inputs: active contracts and branches."""

    contracts: list[Any] = field(default_factory=list)
    branches: list[Any] = field(default_factory=list)

    def branches_for(
        self,
        company_id: Optional[int] = None,
        branch_ids: Optional[Iterable[int]] = None,
    ) -> list[Any]:
        wanted = set(branch_ids) if branch_ids else None
        return [
            b
            for b in self.branches
            if (company_id is None or b.company_id == company_id)
            and (wanted is None or b.id in wanted)
        ]


async def load_planning_snapshot(
    db: AsyncSession, company_id: Optional[int] = None
) -> PlanningSnapshot:
    """Load non-archived contracts (with batches and branches) and branches."""

    contract_stmt = select_active(Contract).options(
        selectinload(Contract.service_batches).selectinload(ServiceBatch.branches)
    )
    branch_stmt = select_active(Branch).order_by(Branch.branch_code, Branch.id)
    if company_id is not None:
        contract_stmt = contract_stmt.where(Contract.company_id == company_id)
        branch_stmt = branch_stmt.where(Branch.company_id == company_id)

    contracts = (await db.execute(contract_stmt.order_by(Contract.id))).scalars().unique().all()
    branches = (await db.execute(branch_stmt)).scalars().all()
    return PlanningSnapshot(contracts=list(contracts), branches=list(branches))


def apply_visit_filters(
    visits: Iterable[Any],
    *,
    branch_id: Optional[int] = None,
    contract_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    status: Optional[str] = None,
    visit_type: Optional[str] = None,
) -> list[Any]:
    """Apply the standard list filters to a sequence of visits.

    Date bounds compare parsed scheduled dates, so visits with an
    unparseable date are dropped as soon as a bound is given.
    """

    result = []
    for v in visits:
        if branch_id is not None and v.branch_id != branch_id:
            continue
        if contract_id is not None and v.contract_id != contract_id:
            continue
        if status is not None and v.status != status:
            continue
        if visit_type is not None and v.type != visit_type:
            continue
        if start is not None or end is not None:
            day = scheduled_on(v)
            if day is None:
                continue
            if start is not None and day < start:
                continue
            if end is not None and day > end:
                continue
        result.append(v)
    return result
