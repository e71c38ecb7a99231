"""
Reusable database query functions for results and their owners.
"""

import logging
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.result import Result
from models.user import User

logger = logging.getLogger(__name__)


class ResultRepository:
    """
    Persistence operations used by the results access policy.

    Wraps a single request-scoped session. Mutating methods commit
    immediately so every policy operation is one transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_all(self) -> Sequence[Result]:
        result = await self.session.execute(select(Result).order_by(Result.id))
        return result.scalars().all()

    async def find_by_owner(self, user_id: int) -> Sequence[Result]:
        result = await self.session.execute(
            select(Result).where(Result.user_id == user_id).order_by(Result.id)
        )
        return result.scalars().all()

    async def find_by_id(self, result_id: int, for_update: bool = False) -> Optional[Result]:
        """
        Fetch one result by primary key.

        Args:
            result_id: Result id to look up
            for_update: Lock the row until the session's transaction ends

        Returns:
            The Result, or None if it does not exist
        """
        query = select(Result).where(Result.id == result_id)
        if for_update:
            query = query.with_for_update(of=Result)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_user(self, user_id: int) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def persist(self, result: Result) -> Result:
        self.session.add(result)
        await self.session.commit()
        logger.debug("Persisted result %s", result.id)
        return result

    async def remove(self, result: Result) -> None:
        await self.session.delete(result)
        await self.session.commit()
        logger.debug("Removed result %s", result.id)
