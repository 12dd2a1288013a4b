from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tgvoice.models import Channel, ChannelMember, User


class ChannelRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_channel(self, channel_id: int) -> Channel | None:
        return await self.db.get(Channel, channel_id)

    async def create_channel(
        self,
        *,
        server_id: int,
        name: str,
        type: str,
        owner_id: int,
    ) -> Channel:
        channel = Channel(server_id=server_id, name=name, type=type, owner_id=owner_id)
        self.db.add(channel)
        await self.db.flush()  # assign channel.id
        return channel

    async def list_channels(self, server_id: int) -> list[Channel]:
        stmt = (
            select(Channel)
            .where(Channel.server_id == server_id)
            .order_by(Channel.created_at.asc(), Channel.id.asc())
        )
        res = await self.db.execute(stmt)
        return list(res.scalars().all())

    async def add_member(self, channel_id: int, user_id: int) -> ChannelMember:
        existing = await self.db.get(ChannelMember, (channel_id, user_id))
        if existing is not None:
            return existing
        member = ChannelMember(channel_id=channel_id, user_id=user_id)
        self.db.add(member)
        await self.db.flush()
        return member

    async def list_members(self, channel_id: int) -> list[tuple[User, ChannelMember]]:
        stmt = (
            select(User, ChannelMember)
            .join(ChannelMember, ChannelMember.user_id == User.id)
            .where(ChannelMember.channel_id == channel_id)
            .order_by(ChannelMember.joined_at.asc(), User.id.asc())
        )
        res = await self.db.execute(stmt)
        return [(user, member) for user, member in res.all()]
