"""Generic repository over one mapped model.

Workflows coordinate only through the rows they share, so the key
operation here is :meth:`BaseRepository.conditional_update`: a single
``UPDATE ... WHERE <guard>`` whose row count tells the caller whether it
won the transition.
"""
from __future__ import annotations

from typing import Any, Generic, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_followup.core.exceptions import RecordNotFoundError, ValidationError
from clinic_followup.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


def as_uuid(value: UUID | str) -> UUID:
    """Coerce an id to UUID, rejecting malformed strings as a 400."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as e:
        raise ValidationError(f"Invalid id: {value!r}", cause=e) from e


class BaseRepository(Generic[ModelT]):
    """CRUD plus guarded updates for ``model``.

    Reads populate existing identity-map objects, so an instance loaded
    earlier in the session always reflects the latest row.
    """

    def __init__(self, model: type[ModelT], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    def _select(self, **filters: Any) -> Select:
        stmt = select(self._model).execution_options(populate_existing=True)
        return stmt.filter_by(**filters) if filters else stmt

    async def get(self, id: UUID | str) -> ModelT | None:
        result = await self._session.execute(
            self._select().where(self._model.id == as_uuid(id))
        )
        return result.scalar_one_or_none()

    async def get_or_raise(self, id: UUID | str) -> ModelT:
        """Like :meth:`get`.

        Raises:
            RecordNotFoundError: No row with that id
        """
        obj = await self.get(id)
        if obj is None:
            raise RecordNotFoundError(
                f"{self._model.__name__} {id} not found",
                details={"id": str(id)},
            )
        return obj

    async def create(self, obj_in: ModelT) -> ModelT:
        """Insert ``obj_in`` and return it with defaults populated."""
        self._session.add(obj_in)
        await self._session.flush()
        await self._session.refresh(obj_in)
        return obj_in

    async def count(self, **filters: Any) -> int:
        """Number of rows whose columns equal ``filters``."""
        stmt = select(func.count()).select_from(self._model)
        if filters:
            stmt = stmt.filter_by(**filters)
        result = await self._session.execute(stmt)
        return result.scalar() or 0

    async def find_many(self, *, limit: int = 100, **filters: Any) -> Sequence[ModelT]:
        """Rows whose columns equal ``filters``, at most ``limit``."""
        result = await self._session.execute(self._select(**filters).limit(limit))
        return result.scalars().all()

    async def conditional_update(
        self,
        id: UUID | str,
        where: list[Any],
        values: dict[str, Any],
    ) -> bool:
        """Update one row only if ``where`` still holds in the database.

        Args:
            id: Primary key of the row
            where: Guard conditions evaluated by the database
            values: Column name to new value (or SQL expression)

        Returns:
            True if this call changed the row, False if the guard failed
        """
        stmt = (
            update(self._model)
            .where(self._model.id == as_uuid(id), *where)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        # Pending inserts must be visible to the guard
        await self._session.flush()
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            return False
        await self.get(id)
        return True
