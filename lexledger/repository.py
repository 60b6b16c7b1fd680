"""
LexLedger - Persistence Gateway

Thin layer over the async SQLAlchemy session:

- ``create`` / ``update`` / ``delete`` translate store-level integrity errors
  into ``ConstraintViolation``.
- ``find`` always re-reads the row, so callers never see a stale copy.
- ``query`` returns a lazily evaluated ``EntityQuery``; nothing is sent to
  the database until a materializer (``all``, ``first``, ``count``, ``sum``,
  ``group_count``) is awaited.
- ``fetch_with_includes`` loads a row together with named child collections.
  Relationships are declared ``lazy="raise"``, so anything not included
  explicitly cannot be loaded by accident.
"""

import logging
from decimal import Decimal
from typing import Any, Generic, Optional, Sequence, Type, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from lexledger.database import Base
from lexledger.errors import ConstraintViolation, NotFound, ValidationFailed
from lexledger.models.base import new_id

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Base)


# =============================================================================
# WRITES
# =============================================================================

async def create(
    db: AsyncSession,
    entity: T,
    conflict_message: Optional[str] = None,
    conflict_field: Optional[str] = None,
) -> T:
    """
    Insert an entity, assigning an identifier if it has none.

    The row is flushed (not committed) so the caller can append the audit
    entry in the same transaction.

    Raises:
        ConstraintViolation: a unique or foreign-key rule rejected the row.
    """
    if getattr(entity, "id", None) is None:
        entity.id = new_id()
    db.add(entity)
    await flush(db, conflict_message, conflict_field)
    return entity


async def update(
    db: AsyncSession,
    entity: T,
    changes: dict,
    conflict_message: Optional[str] = None,
    conflict_field: Optional[str] = None,
) -> T:
    """
    Apply ``changes`` to the entity and flush. Last write wins.

    Raises:
        ValidationFailed: a NOT NULL column was explicitly set to None.
    """
    errors = required_field_errors(type(entity), changes)
    if errors:
        raise ValidationFailed(errors)
    for field, value in changes.items():
        setattr(entity, field, value)
    await flush(db, conflict_message, conflict_field)
    return entity


def required_field_errors(model: Type[Base], changes: dict) -> dict:
    columns = model.__table__.columns
    return {
        field: "This field is required"
        for field, value in changes.items()
        if value is None and field in columns and not columns[field].nullable
    }


async def delete(db: AsyncSession, entity: Base) -> None:
    """Delete a row. Dependent rows follow the ON DELETE rules of the schema."""
    await db.delete(entity)
    await flush(db, "The record is still referenced and cannot be deleted")


async def flush(
    db: AsyncSession,
    conflict_message: Optional[str] = None,
    conflict_field: Optional[str] = None,
) -> None:
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        logger.info("Integrity error: %s", exc.orig)
        raise ConstraintViolation(conflict_message, field=conflict_field) from exc


# =============================================================================
# READS
# =============================================================================

async def find(db: AsyncSession, model: Type[T], entity_id: Optional[str]) -> Optional[T]:
    """Return the entity, or None when it does not exist."""
    if not entity_id:
        return None
    return await db.get(model, entity_id, populate_existing=True)


async def get_or_404(db: AsyncSession, model: Type[T], entity_id: Optional[str]) -> T:
    """Return the entity or raise ``NotFound``."""
    entity = await find(db, model, entity_id)
    if entity is None:
        raise NotFound(model.__name__, entity_id)
    return entity


async def fetch_with_includes(
    db: AsyncSession,
    model: Type[T],
    entity_id: str,
    *includes: Any,
) -> Optional[T]:
    """
    Load one entity plus the given relationship attributes.

    Example::

        matter = await fetch_with_includes(db, Matter, matter_id, Matter.tasks, Matter.documents)
    """
    stmt = (
        select(model)
        .where(model.id == entity_id)
        .options(*[selectinload(attr) for attr in includes])
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


def query(db: AsyncSession, model: Type[T]) -> "EntityQuery[T]":
    return EntityQuery(db, model)


class EntityQuery(Generic[T]):
    """
    Composable, lazily evaluated query over one entity type.

    Every builder returns a new query, so partial queries can be shared::

        open_tasks = query(db, Task).where(Task.status != TaskStatus.DONE)
        total = await open_tasks.count()
        page = await open_tasks.order_by(Task.due_date).page(0, 20).all()
    """

    def __init__(
        self,
        db: AsyncSession,
        model: Type[T],
        criteria: Sequence[Any] = (),
        ordering: Sequence[Any] = (),
        joins: Sequence[Any] = (),
        skip: Optional[int] = None,
        take: Optional[int] = None,
        includes: Sequence[Any] = (),
    ):
        self.db = db
        self.model = model
        self._criteria = tuple(criteria)
        self._ordering = tuple(ordering)
        self._joins = tuple(joins)
        self._skip = skip
        self._take = take
        self._includes = tuple(includes)

    def _copy(self, **overrides: Any) -> "EntityQuery[T]":
        state = {
            "criteria": self._criteria,
            "ordering": self._ordering,
            "joins": self._joins,
            "skip": self._skip,
            "take": self._take,
            "includes": self._includes,
        }
        state.update(overrides)
        return EntityQuery(self.db, self.model, **state)

    # Builders

    def where(self, *criteria: Any) -> "EntityQuery[T]":
        return self._copy(criteria=self._criteria + tuple(c for c in criteria if c is not None))

    def filter_by(self, **fields: Any) -> "EntityQuery[T]":
        """Equality filters; ``None`` values are skipped (unset form filters)."""
        criteria = [
            getattr(self.model, name) == value
            for name, value in fields.items()
            if value is not None
        ]
        return self.where(*criteria)

    def join(self, target: Any, *onclause: Any) -> "EntityQuery[T]":
        return self._copy(joins=self._joins + ((target, onclause),))

    def order_by(self, *columns: Any) -> "EntityQuery[T]":
        return self._copy(ordering=self._ordering + columns)

    def page(self, skip: int = 0, take: Optional[int] = None) -> "EntityQuery[T]":
        return self._copy(skip=max(skip, 0), take=take)

    def include(self, *relationships: Any) -> "EntityQuery[T]":
        return self._copy(includes=self._includes + relationships)

    # Statement building

    def _apply_filters(self, stmt: Select) -> Select:
        for target, onclause in self._joins:
            stmt = stmt.join(target, *onclause)
        if self._criteria:
            stmt = stmt.where(*self._criteria)
        return stmt

    def statement(self) -> Select:
        stmt = self._apply_filters(select(self.model))
        if self._includes:
            stmt = stmt.options(*[selectinload(attr) for attr in self._includes])
        if self._ordering:
            stmt = stmt.order_by(*self._ordering)
        if self._skip:
            stmt = stmt.offset(self._skip)
        if self._take is not None:
            stmt = stmt.limit(self._take)
        return stmt.execution_options(populate_existing=True)

    # Materializers

    async def all(self) -> list[T]:
        result = await self.db.execute(self.statement())
        return list(result.scalars().all())

    async def first(self) -> Optional[T]:
        result = await self.db.execute(self.page(self._skip or 0, 1).statement())
        return result.scalars().first()

    async def count(self) -> int:
        stmt = self._apply_filters(select(func.count()).select_from(self.model))
        return int(await self.db.scalar(stmt) or 0)

    async def sum(self, column: Any) -> Decimal:
        stmt = self._apply_filters(select(func.coalesce(func.sum(column), 0)).select_from(self.model))
        value = await self.db.scalar(stmt)
        return Decimal(str(value or 0)).quantize(Decimal("0.01"))

    async def group_count(self, column: Any) -> dict:
        stmt = self._apply_filters(
            select(column, func.count()).select_from(self.model)
        ).group_by(column)
        result = await self.db.execute(stmt)
        return {key: int(count) for key, count in result.all()}
