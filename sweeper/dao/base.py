"""Base DAO abstract class."""

from abc import ABC
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sweeper.database import Database

# Type variable for Pydantic domain models
T = TypeVar("T")


class BaseDAO(ABC, Generic[T]):
    """Abstract base class for Data Access Objects.

    DAOs return Pydantic domain models, never ORM rows. Each public method
    opens its own ``Database.session()``, so one call is one transaction.
    """

    def __init__(self, database: Database):
        self._db = database

    @property
    def db(self) -> Database:
        return self._db

    @staticmethod
    async def _get_row(session: AsyncSession, model: type, row_id: Any) -> Any | None:
        """Load one ORM row by primary key ``id`` inside an open session."""
        result = await session.execute(select(model).where(model.id == row_id))
        return result.scalar_one_or_none()
