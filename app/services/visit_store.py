"""Authoritative collection of visit records.

Every operation returns a :class:`StoreResult` instead of raising, so planning
code and routers can branch on ``success`` without try/except. Writes are
committed before the call returns; a read issued afterwards always sees them.

Two implementations share the validation rules:

* :class:`SqlVisitStore` backed by an ``AsyncSession``.
* :class:`InMemoryVisitStore` holding a snapshot, used for previews and tests.
"""

from __future__ import annotations

import abc
import dataclasses
import itertools
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Generic, Iterable, Mapping, TypeVar

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.logging import logger
from app.db.utils import select_active
from app.models.contract import Contract, ServiceBatch
from app.models.visit import Visit, VisitStatus, VisitType
from app.services.contract_requirements import contract_covers_branch
from app.services.planning_errors import UnparseableDate, ValidationError
from app.services.visit_code_service import compute_visit_code
from app.services.visit_dates import format_visit_date, parse_visit_date, scheduled_on

T = TypeVar("T")

KIND_VALIDATION = "validation"
KIND_NOT_FOUND = "not_found"
KIND_PERSISTENCE = "persistence"


@dataclass
class StoreResult(Generic[T]):
    """Outcome of a store operation.

    ``kind`` classifies failures (``validation``, ``not_found`` or
    ``persistence``) so the HTTP layer can pick a status code.
    """

    success: bool
    data: T | None = None
    error: str | None = None
    kind: str | None = None

    @classmethod
    def ok(cls, data: T | None = None) -> "StoreResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, kind: str = KIND_VALIDATION) -> "StoreResult[T]":
        return cls(success=False, error=error, kind=kind)


@dataclass
class VisitDraft:
    """A visit that has been computed but not persisted yet."""

    branch_id: int
    contract_id: int
    scheduled_date: str
    company_id: int | None = None
    type: str = VisitType.REGULAR.value
    status: str = VisitStatus.SCHEDULED.value
    services: dict[str, bool] | None = None
    notes: str | None = None
    created_by: str | None = None

    is_archived = False

    @property
    def scheduled_on(self) -> date | None:
        return parse_visit_date(self.scheduled_date)


_REQUIRED_FIELDS = ("branch_id", "contract_id", "scheduled_date")
_CREATE_FIELDS = (
    "branch_id",
    "contract_id",
    "company_id",
    "type",
    "status",
    "scheduled_date",
    "completed_date",
    "results",
    "services",
    "notes",
    "created_by",
)
_UPDATE_FIELDS = frozenset(
    {
        "type",
        "scheduled_date",
        "completed_date",
        "results",
        "services",
        "notes",
        "updated_by",
    }
)
# Status only changes through the lifecycle transitions
_LIFECYCLE_FIELDS = _UPDATE_FIELDS | {"status"}


def _as_fields(visit: Any) -> dict[str, Any]:
    if isinstance(visit, Mapping):
        return dict(visit)
    if hasattr(visit, "model_dump"):
        return visit.model_dump(exclude_unset=False)
    if dataclasses.is_dataclass(visit):
        return dataclasses.asdict(visit)
    return {name: getattr(visit, name, None) for name in _CREATE_FIELDS}


def _normalize_date(value: Any) -> str:
    if isinstance(value, date):
        return format_visit_date(value)
    parsed = parse_visit_date(value)
    if parsed is None:
        raise UnparseableDate(value)
    return format_visit_date(parsed)


def _enum_value(enum_cls: type, name: str, value: Any) -> str:
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"Invalid {name} {value!r}; expected one of {allowed}"
        ) from None


def ensure_contract_open(contract: Any, contract_id: int | None) -> None:
    if contract is None:
        raise ValidationError(f"Contract {contract_id} not found")
    if getattr(contract, "is_archived", False):
        raise ValidationError(f"Contract {contract_id} is archived")


def validate_new_visit(fields: Mapping[str, Any], contract: Any) -> dict[str, Any]:
    """Validate a new visit and return the normalized column values.

    Raises:
        ValidationError: When a required field is missing, the contract is
            unknown or archived, the branch is not covered by any batch of
            the contract, or a date or enum value is invalid.
    """

    missing = [name for name in _REQUIRED_FIELDS if fields.get(name) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")

    contract_id = fields["contract_id"]
    branch_id = fields["branch_id"]
    ensure_contract_open(contract, contract_id)
    if not contract_covers_branch(contract, branch_id):
        raise ValidationError(
            f"Branch {branch_id} is not covered by any service batch of "
            f"contract {contract_id}"
        )

    data = {name: fields[name] for name in _CREATE_FIELDS if fields.get(name) is not None}
    data["scheduled_date"] = _normalize_date(fields["scheduled_date"])
    if data.get("completed_date") is not None:
        data["completed_date"] = _normalize_date(data["completed_date"])
    data["type"] = _enum_value(VisitType, "type", data.get("type", VisitType.REGULAR))
    data["status"] = _enum_value(
        VisitStatus, "status", data.get("status", VisitStatus.SCHEDULED)
    )
    data.setdefault("company_id", getattr(contract, "company_id", None))
    if data["company_id"] is None:
        raise ValidationError("Missing required field(s): company_id")
    return data


def validate_patch(patch: Mapping[str, Any], lifecycle: bool = False) -> dict[str, Any]:
    """Validate an update payload; unknown fields are rejected.

    ``status`` is accepted only when ``lifecycle`` is set, i.e. when the
    caller has already checked the transition.
    """

    allowed = _LIFECYCLE_FIELDS if lifecycle else _UPDATE_FIELDS
    unknown = sorted(set(patch) - allowed)
    if unknown:
        raise ValidationError(f"Field(s) cannot be updated: {', '.join(unknown)}")

    data = dict(patch)
    if "scheduled_date" in data:
        if data["scheduled_date"] in (None, ""):
            raise ValidationError("Missing required field(s): scheduled_date")
        data["scheduled_date"] = _normalize_date(data["scheduled_date"])
    if data.get("completed_date") is not None:
        data["completed_date"] = _normalize_date(data["completed_date"])
    if "type" in data:
        data["type"] = _enum_value(VisitType, "type", data["type"])
    if "status" in data:
        data["status"] = _enum_value(VisitStatus, "status", data["status"])
    return data


def in_range(visit: Any, start: date, end: date) -> bool:
    value = scheduled_on(visit)
    return value is not None and start <= value <= end


class VisitStore(abc.ABC):
    """Read/query and write interface over persisted visits."""

    @abc.abstractmethod
    async def visits_for_branch(self, branch_id: int) -> StoreResult[list[Visit]]: ...

    @abc.abstractmethod
    async def visits_for_contract(self, contract_id: int) -> StoreResult[list[Visit]]: ...

    @abc.abstractmethod
    async def visits_in_range(self, start: date, end: date) -> StoreResult[list[Visit]]:
        """Return non-archived visits whose parsed date lies in ``[start, end]``.

        Visits with an unparseable ``scheduled_date`` never match.
        """

    @abc.abstractmethod
    async def all_visits(self, include_archived: bool = False) -> StoreResult[list[Visit]]: ...

    @abc.abstractmethod
    async def get(self, visit_id: int) -> StoreResult[Visit]: ...

    @abc.abstractmethod
    async def create(self, visit: Any) -> StoreResult[Visit]: ...

    @abc.abstractmethod
    async def create_many(self, visits: Iterable[Any]) -> StoreResult[list[Visit]]:
        """Persist several visits in one write; all or none are stored."""

    @abc.abstractmethod
    async def update(
        self, visit_id: int, patch: Mapping[str, Any], lifecycle: bool = False
    ) -> StoreResult[Visit]:
        """Apply a partial update; see :func:`validate_patch` for ``lifecycle``."""

    @abc.abstractmethod
    async def delete(
        self, visit_id: int, hard: bool = False, actor: str | None = None
    ) -> StoreResult[bool]:
        """Archive a visit, or remove the row when ``hard`` is set."""


class SqlVisitStore(VisitStore):
    """Visit store on top of an ``AsyncSession``; commits per call."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _load_contract(self, contract_id: int) -> Contract | None:
        stmt = (
            select(Contract)
            .where(Contract.id == contract_id)
            .options(selectinload(Contract.service_batches).selectinload(ServiceBatch.branches))
        )
        return (await self.db.execute(stmt)).scalars().first()

    async def _fetch(self, *conditions: Any, include_archived: bool = False) -> list[Visit]:
        stmt = select_active(Visit, include_archived=include_archived)
        for cond in conditions:
            stmt = stmt.where(cond)
        stmt = stmt.order_by(Visit.id)
        return list((await self.db.execute(stmt)).scalars().unique().all())

    async def _persistence_failure(self, action: str, exc: Exception) -> StoreResult:
        await self.db.rollback()
        logger.warning("Visit store %s failed: %s", action, exc, exc_info=True)
        return StoreResult.fail(f"Failed to {action}: {exc}", kind=KIND_PERSISTENCE)

    async def visits_for_branch(self, branch_id: int) -> StoreResult[list[Visit]]:
        try:
            return StoreResult.ok(await self._fetch(Visit.branch_id == branch_id))
        except SQLAlchemyError as exc:
            return await self._persistence_failure("load branch visits", exc)

    async def visits_for_contract(self, contract_id: int) -> StoreResult[list[Visit]]:
        try:
            return StoreResult.ok(await self._fetch(Visit.contract_id == contract_id))
        except SQLAlchemyError as exc:
            return await self._persistence_failure("load contract visits", exc)

    async def visits_in_range(self, start: date, end: date) -> StoreResult[list[Visit]]:
        # Dates are stored as text, so the query narrows on the year suffix
        # only; the exact range is checked on parsed values.
        suffixes = []
        for year in range(start.year, end.year + 1):
            suffixes += [f"%-{year:04d}", f"%-{year % 100:02d}"]
        try:
            rows = await self._fetch(or_(*(Visit.scheduled_date.like(s) for s in suffixes)))
        except SQLAlchemyError as exc:
            return await self._persistence_failure("load visits", exc)
        return StoreResult.ok([v for v in rows if in_range(v, start, end)])

    async def all_visits(self, include_archived: bool = False) -> StoreResult[list[Visit]]:
        try:
            return StoreResult.ok(await self._fetch(include_archived=include_archived))
        except SQLAlchemyError as exc:
            return await self._persistence_failure("load visits", exc)

    async def get(self, visit_id: int) -> StoreResult[Visit]:
        try:
            visit = await self.db.get(Visit, visit_id)
        except SQLAlchemyError as exc:
            return await self._persistence_failure("load visit", exc)
        if visit is None:
            return StoreResult.fail(f"Visit {visit_id} not found", kind=KIND_NOT_FOUND)
        return StoreResult.ok(visit)

    async def _build(self, visit: Any) -> Visit:
        fields = _as_fields(visit)
        contract_id = fields.get("contract_id")
        contract = await self._load_contract(contract_id) if contract_id is not None else None
        return Visit(**validate_new_visit(fields, contract))

    async def create(self, visit: Any) -> StoreResult[Visit]:
        result = await self.create_many([visit])
        if not result.success:
            return StoreResult.fail(result.error or "create failed", kind=result.kind)
        return StoreResult.ok(result.data[0])

    async def create_many(self, visits: Iterable[Any]) -> StoreResult[list[Visit]]:
        try:
            rows = [await self._build(v) for v in visits]
        except ValidationError as exc:
            return StoreResult.fail(str(exc))
        except SQLAlchemyError as exc:
            return await self._persistence_failure("validate visits", exc)
        if not rows:
            return StoreResult.ok([])

        try:
            self.db.add_all(rows)
            await self.db.flush()
            for row in rows:
                row.visit_code = compute_visit_code(row)
            await self.db.commit()
        except SQLAlchemyError as exc:
            return await self._persistence_failure("create visits", exc)

        logger.debug("Created %s visit(s): %s", len(rows), [r.id for r in rows])
        return StoreResult.ok(rows)

    async def update(
        self, visit_id: int, patch: Mapping[str, Any], lifecycle: bool = False
    ) -> StoreResult[Visit]:
        found = await self.get(visit_id)
        if not found.success:
            return found
        visit = found.data
        try:
            contract = await self._load_contract(visit.contract_id)
            ensure_contract_open(contract, visit.contract_id)
            data = validate_patch(patch, lifecycle=lifecycle)
        except ValidationError as exc:
            return StoreResult.fail(str(exc))
        except SQLAlchemyError as exc:
            return await self._persistence_failure("update visit", exc)

        try:
            for key, value in data.items():
                setattr(visit, key, value)
            await self.db.commit()
            await self.db.refresh(visit)
        except SQLAlchemyError as exc:
            return await self._persistence_failure("update visit", exc)
        return StoreResult.ok(visit)

    async def delete(
        self, visit_id: int, hard: bool = False, actor: str | None = None
    ) -> StoreResult[bool]:
        found = await self.get(visit_id)
        if not found.success:
            return StoreResult.fail(found.error or "not found", kind=found.kind)
        visit = found.data
        try:
            ensure_contract_open(await self._load_contract(visit.contract_id), visit.contract_id)
        except ValidationError as exc:
            return StoreResult.fail(str(exc))
        except SQLAlchemyError as exc:
            return await self._persistence_failure("delete visit", exc)

        try:
            if hard:
                await self.db.delete(visit)
            else:
                visit.is_archived = True
                visit.archived_at = datetime.now(timezone.utc)
                visit.archived_by = actor
            await self.db.commit()
        except SQLAlchemyError as exc:
            return await self._persistence_failure("delete visit", exc)
        return StoreResult.ok(True)


class InMemoryVisitStore(VisitStore):
    """Snapshot store keeping ORM ``Visit`` instances in a dict.

    Contracts are needed for the coverage check on create and the archived
    contract guard on update/delete.
    """

    def __init__(
        self,
        contracts: Iterable[Any] = (),
        visits: Iterable[Any] = (),
    ) -> None:
        self.contracts = {c.id: c for c in contracts}
        self._visits: dict[int, Any] = {}
        for v in visits:
            self._visits[v.id] = v
        start = max(self._visits, default=0) + 1
        self._ids = itertools.count(start)

    def _active(self) -> list[Any]:
        return [v for _, v in sorted(self._visits.items()) if not v.is_archived]

    async def visits_for_branch(self, branch_id: int) -> StoreResult[list[Visit]]:
        return StoreResult.ok([v for v in self._active() if v.branch_id == branch_id])

    async def visits_for_contract(self, contract_id: int) -> StoreResult[list[Visit]]:
        return StoreResult.ok([v for v in self._active() if v.contract_id == contract_id])

    async def visits_in_range(self, start: date, end: date) -> StoreResult[list[Visit]]:
        return StoreResult.ok([v for v in self._active() if in_range(v, start, end)])

    async def all_visits(self, include_archived: bool = False) -> StoreResult[list[Visit]]:
        if include_archived:
            return StoreResult.ok([v for _, v in sorted(self._visits.items())])
        return StoreResult.ok(self._active())

    async def get(self, visit_id: int) -> StoreResult[Visit]:
        visit = self._visits.get(visit_id)
        if visit is None:
            return StoreResult.fail(f"Visit {visit_id} not found", kind=KIND_NOT_FOUND)
        return StoreResult.ok(visit)

    def _build(self, visit: Any) -> Visit:
        fields = _as_fields(visit)
        data = validate_new_visit(fields, self.contracts.get(fields.get("contract_id")))
        now = datetime.now(timezone.utc)
        row = Visit(
            **data,
            is_archived=False,
            created_at=now,
            updated_at=now,
        )
        return row

    async def create(self, visit: Any) -> StoreResult[Visit]:
        result = await self.create_many([visit])
        if not result.success:
            return StoreResult.fail(result.error or "create failed", kind=result.kind)
        return StoreResult.ok(result.data[0])

    async def create_many(self, visits: Iterable[Any]) -> StoreResult[list[Visit]]:
        try:
            rows = [self._build(v) for v in visits]
        except ValidationError as exc:
            return StoreResult.fail(str(exc))
        for row in rows:
            row.id = next(self._ids)
            row.visit_code = compute_visit_code(row)
            self._visits[row.id] = row
        return StoreResult.ok(rows)

    async def update(
        self, visit_id: int, patch: Mapping[str, Any], lifecycle: bool = False
    ) -> StoreResult[Visit]:
        found = await self.get(visit_id)
        if not found.success:
            return found
        visit = found.data
        try:
            ensure_contract_open(self.contracts.get(visit.contract_id), visit.contract_id)
            data = validate_patch(patch, lifecycle=lifecycle)
        except ValidationError as exc:
            return StoreResult.fail(str(exc))
        for key, value in data.items():
            setattr(visit, key, value)
        visit.updated_at = datetime.now(timezone.utc)
        return StoreResult.ok(visit)

    async def delete(
        self, visit_id: int, hard: bool = False, actor: str | None = None
    ) -> StoreResult[bool]:
        found = await self.get(visit_id)
        if not found.success:
            return StoreResult.fail(found.error or "not found", kind=found.kind)
        visit = found.data
        try:
            ensure_contract_open(self.contracts.get(visit.contract_id), visit.contract_id)
        except ValidationError as exc:
            return StoreResult.fail(str(exc))
        if hard:
            del self._visits[visit_id]
        else:
            visit.is_archived = True
            visit.archived_at = datetime.now(timezone.utc)
            visit.archived_by = actor
        return StoreResult.ok(True)
