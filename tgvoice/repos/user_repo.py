from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from tgvoice.models import User


class UserRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: int) -> User | None:
        return await self.db.get(User, user_id)

    async def create(
        self,
        *,
        user_id: int,
        username: str,
        first_name: str,
        last_name: str,
        avatar: str,
    ) -> User:
        user = User(
            id=user_id,
            username=username,
            first_name=first_name,
            last_name=last_name,
            avatar=avatar,
            status="online",
        )
        self.db.add(user)
        await self.db.flush()
        return user

    async def set_status(self, user_id: int, *, status: str) -> User | None:
        user = await self.get(user_id)
        if user is None:
            return None
        user.status = status
        await self.db.flush()
        return user
