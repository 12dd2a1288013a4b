from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from tgvoice.models import User
from tgvoice.repos.user_repo import UserRepo
from tgvoice.services.identity_service import Identity


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = UserRepo(db)

    async def upsert_profile(self, identity: Identity) -> User:
        """
        Create the caller's user row, or refresh it from the Telegram identity.
        Empty identity fields never overwrite stored values.
        """
        async with self.db.begin():
            user = await self.users.get(identity.id)
            if user is None:
                return await self.users.create(
                    user_id=identity.id,
                    username=identity.username or f"{identity.first_name} {identity.last_name}".strip(),
                    first_name=identity.first_name,
                    last_name=identity.last_name,
                    avatar=identity.avatar_url,
                )

            user.username = identity.username or user.username
            user.first_name = identity.first_name or user.first_name
            user.last_name = identity.last_name or user.last_name
            user.avatar = identity.avatar_url or user.avatar
            await self.db.flush()
            return user

    async def ensure_user(self, identity: Identity) -> User:
        """Make sure a row exists for the caller (servers/channels reference it)."""
        async with self.db.begin():
            user = await self.users.get(identity.id)
            if user is None:
                user = await self.users.create(
                    user_id=identity.id,
                    username=identity.username,
                    first_name=identity.first_name,
                    last_name=identity.last_name,
                    avatar=identity.avatar_url,
                )
            return user

    async def set_status(self, user_id: int, *, status: str) -> User | None:
        async with self.db.begin():
            return await self.users.set_status(user_id, status=status)

    async def get_user(self, user_id: int) -> User | None:
        async with self.db.begin():
            return await self.users.get(user_id)
