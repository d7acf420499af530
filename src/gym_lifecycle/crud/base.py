from typing import Any, Dict, Generic, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.models.base import Base

SQLModelType = TypeVar("SQLModelType", bound=Base)


class CRUDBase(Generic[SQLModelType]):
    def __init__(self, sql_model: Type[SQLModelType]):
        """
        CRUD object with default methods to Create, Read, Update, Delete (CRUD).
        **Parameters**
        * `sql_model`: A SQLAlchemy model class
        """
        self.sql_model = sql_model

    async def get(self, db: AsyncSession, *, id: int) -> Optional[SQLModelType]:
        """Get a single object by ID."""
        stmt = select(self.sql_model).where(self.sql_model.id == id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self, db: AsyncSession, *, obj_in: Union[BaseModel, Dict[str, Any]], commit: bool = True
    ) -> SQLModelType:
        """Create a new object."""
        obj_in_data = obj_in.model_dump(exclude_unset=True) if isinstance(obj_in, BaseModel) else dict(obj_in)
        db_obj = self.sql_model(**obj_in_data)
        db.add(db_obj)
        if commit:
            await db.commit()
            await db.refresh(db_obj)
        else:
            await db.flush()
        return db_obj

    async def update_where(
        self,
        db: AsyncSession,
        *conditions: Any,
        values: Dict[str, Any],
        commit: bool = True,
    ) -> int:
        """Conditional update; returns the number of rows whose guard still held."""
        stmt = update(self.sql_model).where(*conditions).values(**values).execution_options(
            synchronize_session=False
        )
        result = await db.execute(stmt)
        if commit:
            await db.commit()
        return result.rowcount or 0

    async def delete_where(self, db: AsyncSession, *conditions: Any, commit: bool = True) -> int:
        """Conditional delete; returns the number of rows removed."""
        stmt = delete(self.sql_model).where(*conditions).execution_options(synchronize_session=False)
        result = await db.execute(stmt)
        if commit:
            await db.commit()
        return result.rowcount or 0
