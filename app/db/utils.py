from typing import Type, TypeVar

from sqlalchemy import select
from sqlalchemy.sql import Select

from app.models import ArchiveMixin

T = TypeVar("T", bound=ArchiveMixin)


def select_active(entity: Type[T], include_archived: bool = False) -> Select:
    """Create a SELECT statement that hides archived records.

    Use this instead of ``select(Entity)`` for any model inheriting from
    ``ArchiveMixin`` so archived companies, contracts, branches and visits
    never leak into planning inputs or grid projections.
    """
    stmt = select(entity)
    if not include_archived:
        stmt = stmt.where(entity.is_archived.is_(False))
    return stmt
